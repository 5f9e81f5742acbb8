"""
Tests for dependency ordering and structural validation.
"""

import pytest

from synthgen.executor import (
    CyclicDependencyError,
    ExecutionStep,
    ScenarioExecutor,
    StepHandlerRegistry,
    UnknownStepKindError,
    WorkflowConfigurationError,
    WorkflowDefinition,
    WorkflowDefinitionError,
    compute_execution_order,
)


def _step(step_id, *deps, kind="noop"):
    return ExecutionStep(id=step_id, kind=kind, dependencies=list(deps))


@pytest.mark.unit
def test_dependencies_precede_dependents():
    steps = [
        _step("report", "analyze", "validate"),
        _step("analyze", "gen"),
        _step("validate", "gen"),
        _step("gen"),
    ]
    order = compute_execution_order(steps)

    assert sorted(order) == ["analyze", "gen", "report", "validate"]
    for step in steps:
        for dep in step.dependencies:
            assert order.index(dep) < order.index(step.id)


@pytest.mark.unit
def test_independent_steps_keep_declaration_order():
    order = compute_execution_order([_step("c"), _step("a"), _step("b")])
    assert order == ["c", "a", "b"]


@pytest.mark.unit
def test_cycle_is_detected():
    steps = [_step("a", "c"), _step("b", "a"), _step("c", "b")]

    with pytest.raises(CyclicDependencyError) as exc_info:
        compute_execution_order(steps)

    assert exc_info.value.step_id == "a"
    assert "Circular dependency detected involving step: a" in str(exc_info.value)


@pytest.mark.unit
def test_self_dependency_is_a_cycle():
    with pytest.raises(CyclicDependencyError):
        compute_execution_order([_step("loop", "loop")])


@pytest.mark.unit
def test_duplicate_dependencies_are_collapsed():
    step = _step("b", "a", "a")
    assert step.dependencies == ["a"]


@pytest.mark.unit
def test_unknown_dependency_raises_definition_error():
    with pytest.raises(WorkflowDefinitionError):
        compute_execution_order([_step("b", "missing")])


@pytest.mark.unit
def test_long_chain_declared_in_reverse():
    count = 2000
    steps = [_step(f"s{i}", f"s{i - 1}") for i in range(count - 1, 0, -1)] + [_step("s0")]

    order = compute_execution_order(steps)

    assert order == [f"s{i}" for i in range(count)]


@pytest.mark.unit
def test_long_cycle_is_detected():
    count = 1500
    steps = [_step(f"s{i}", f"s{(i + 1) % count}") for i in range(count)]
    with pytest.raises(CyclicDependencyError):
        compute_execution_order(steps)


class TestExecutorStructuralChecks:
    """Structural errors raise before any handler runs."""

    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def executor(self, fast_config, calls):
        registry = StepHandlerRegistry()

        async def noop(step, context):
            calls.append(step.id)
            return step.id

        registry.register("noop", noop)
        return ScenarioExecutor(registry=registry, config=fast_config)

    @pytest.mark.asyncio
    async def test_cycle_raises_before_execution(self, executor, calls):
        definition = WorkflowDefinition(
            id="wf-cycle",
            name="cycle",
            steps=[_step("start"), _step("a", "b"), _step("b", "a")],
        )
        with pytest.raises(CyclicDependencyError):
            await executor.execute_workflow(definition)
        assert calls == []
        assert executor.get_active_executions() == []

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self, executor, calls):
        definition = WorkflowDefinition(id="wf-dup", name="dup", steps=[_step("a"), _step("a")])
        with pytest.raises(WorkflowDefinitionError, match="Duplicate step id: a"):
            await executor.execute_workflow(definition)
        assert calls == []

    @pytest.mark.asyncio
    async def test_missing_dependency_rejected(self, executor):
        definition = WorkflowDefinition(id="wf-missing", name="missing", steps=[_step("a", "ghost")])
        with pytest.raises(WorkflowDefinitionError) as exc_info:
            await executor.execute_workflow(definition)
        assert exc_info.value.workflow_id == "wf-missing"

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, executor, calls):
        definition = WorkflowDefinition(
            id="wf-kind",
            name="kind",
            steps=[_step("a"), _step("b", "a", kind="teleport")],
        )
        with pytest.raises(UnknownStepKindError) as exc_info:
            await executor.execute_workflow(definition)

        error = exc_info.value
        assert isinstance(error, WorkflowConfigurationError)
        assert error.kind == "teleport"
        assert error.step_ids == ["b"]
        assert error.available_kinds == ["noop"]
        assert calls == []

    @pytest.mark.asyncio
    async def test_long_chain_runs_to_completion(self, executor, calls):
        count = 1500
        steps = [_step(f"s{i}", f"s{i - 1}") for i in range(count - 1, 0, -1)] + [_step("s0")]
        definition = WorkflowDefinition(id="wf-chain", name="chain", steps=steps)

        result = await executor.execute_workflow(definition)

        assert result.success is True
        assert calls == [f"s{i}" for i in range(count)]
