"""
Tests for ScenarioExecutor step execution, retries, rollback and batches.
"""

import asyncio

import pytest

from synthgen.config import ExecutorConfig
from synthgen.executor import (
    ExecutionStep,
    FunctionStepHandler,
    ScenarioExecutor,
    StepHandlerRegistry,
    WorkflowDefinition,
    WorkflowValidation,
    create_simple_workflow,
)
from synthgen.observability import get_correlation_id, set_correlation_id
from synthgen.observability.metrics import export_metrics


class Recorder:
    """Counts handler calls per step and can fail or stall on demand."""

    def __init__(self):
        self.calls = []
        self.rollbacks = []

    async def ok(self, step, context):
        self.calls.append(step.id)
        return {"step": step.id}

    async def boom(self, step, context):
        self.calls.append(step.id)
        raise RuntimeError(f"{step.id} exploded")

    async def slow(self, step, context):
        self.calls.append(step.id)
        await asyncio.sleep(step.parameters.get("sleep", 0.5))
        return "late"

    async def record_rollback(self, step, context):
        self.rollbacks.append(step.id)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def custom_executor(recorder, fast_config):
    registry = StepHandlerRegistry()
    registry.register("ok", FunctionStepHandler(recorder.ok, recorder.record_rollback))
    registry.register("boom", recorder.boom)
    registry.register("slow", recorder.slow)
    return ScenarioExecutor(registry=registry, config=fast_config)


def _definition(*steps, **validation):
    return WorkflowDefinition(
        id="wf-test",
        name="test workflow",
        steps=list(steps),
        validation=WorkflowValidation(**validation),
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_linear_three_step_scenario(executor):
    definition = create_simple_workflow(
        [
            {
                "id": "gen",
                "kind": "generation",
                "parameters": {
                    "metrics": [{"metric_type": "cpu", "pattern": "stable", "duration_seconds": 10}]
                },
            },
            {"id": "analyze", "kind": "analysis"},
            {"id": "validate", "kind": "validation"},
        ]
    )

    result = await executor.execute_workflow(definition)

    assert result.success is True
    assert result.completed_steps == ["gen", "analyze", "validate"]
    assert result.failed_steps == []
    assert set(result.results) == {"gen", "analyze", "validate"}
    assert result.results["gen"]["total_points"] == 10
    assert result.results["analyze"]["analyzed_streams"] == 1
    assert result.results["validate"]["validation_passed"] is True
    assert result.summary.total_steps == 3
    assert result.summary.success_rate == 1.0


@pytest.mark.unit
def test_simple_workflow_chains_steps():
    definition = create_simple_workflow(
        [
            {"id": "a", "kind": "ok", "max_retries": 7},
            ExecutionStep(id="b", kind="ok", dependencies=["x"]),
            {"id": "c", "kind": "ok"},
        ]
    )

    assert [s.dependencies for s in definition.steps] == [[], ["a"], ["b"]]
    assert all(s.max_retries == 2 and s.timeout_ms == 30_000 for s in definition.steps)
    assert definition.validation.required_results == ["a", "b", "c"]
    assert definition.validation.rollback_on_failure is False


@pytest.mark.asyncio
async def test_failed_dependency_blocks_dependent(custom_executor, recorder):
    definition = _definition(
        ExecutionStep(id="a", kind="boom", max_retries=0),
        ExecutionStep(id="b", kind="ok", dependencies=["a"]),
    )

    result = await custom_executor.execute_workflow(definition)

    assert result.success is False
    assert result.failed_steps == ["a", "b"]
    assert recorder.calls == ["a"]
    assert any("Dependencies not met: a" in e for e in result.errors)


@pytest.mark.asyncio
async def test_retry_bound(custom_executor, recorder):
    definition = _definition(ExecutionStep(id="flaky", kind="boom", max_retries=3))

    result = await custom_executor.execute_workflow(definition)

    assert recorder.calls == ["flaky"] * 4
    assert result.failed_steps == ["flaky"]
    assert "flaky exploded" in result.errors[0]


@pytest.mark.asyncio
async def test_retry_recovers_after_transient_failure(fast_config):
    attempts = []

    async def transient(step, context):
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("try again")
        return "ok"

    registry = StepHandlerRegistry()
    registry.register("transient", transient)
    executor = ScenarioExecutor(registry=registry, config=fast_config)

    result = await executor.execute_workflow(
        _definition(ExecutionStep(id="t", kind="transient", max_retries=2))
    )

    assert result.success is True
    assert result.results == {"t": "ok"}
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_backoff_is_linear(recorder, monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    registry = StepHandlerRegistry()
    registry.register("boom", recorder.boom)
    executor = ScenarioExecutor(
        registry=registry, config=ExecutorConfig(retry_base_delay_seconds=0.25)
    )
    monkeypatch.setattr("synthgen.executor.executor.asyncio.sleep", fake_sleep)

    await executor.execute_workflow(_definition(ExecutionStep(id="x", kind="boom", max_retries=3)))

    assert delays == [0.25, 0.5, 0.75]


@pytest.mark.asyncio
@pytest.mark.parametrize("retries", [0, 2])
async def test_timeout_fails_step(custom_executor, recorder, retries):
    definition = _definition(
        ExecutionStep(id="stall", kind="slow", timeout_ms=20, max_retries=retries)
    )

    result = await custom_executor.execute_workflow(definition)

    assert result.failed_steps == ["stall"]
    assert recorder.calls == ["stall"] * (retries + 1)
    assert "Operation timed out after 20ms" in result.errors[0]
    assert "stall" not in result.results


@pytest.mark.asyncio
async def test_timeout_then_success_on_retry(fast_config):
    attempts = []

    async def slow_once(step, context):
        attempts.append(1)
        if len(attempts) == 1:
            await asyncio.sleep(1)
        return "done"

    registry = StepHandlerRegistry()
    registry.register("slow_once", slow_once)
    executor = ScenarioExecutor(registry=registry, config=fast_config)

    result = await executor.execute_workflow(
        _definition(ExecutionStep(id="s", kind="slow_once", timeout_ms=30, max_retries=1))
    )

    assert result.success is True
    assert result.results["s"] == "done"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_rollback_reverts_completed_steps(custom_executor, recorder):
    definition = _definition(
        ExecutionStep(id="a", kind="ok"),
        ExecutionStep(id="b", kind="ok", dependencies=["a"]),
        ExecutionStep(id="c", kind="boom", dependencies=["b"], max_retries=0),
        ExecutionStep(id="d", kind="ok", dependencies=["c"]),
        rollback_on_failure=True,
    )

    result = await custom_executor.execute_workflow(definition)

    assert result.success is False
    assert result.completed_steps == []
    assert result.rolled_back_steps == ["b", "a"]
    assert result.failed_steps == ["c"]
    assert "a" not in result.results and "b" not in result.results
    assert recorder.rollbacks == ["b", "a"]
    assert "d" not in recorder.calls


@pytest.mark.asyncio
async def test_rollback_hook_failure_is_logged_not_raised(fast_config):
    async def ok(step, context):
        return 1

    async def bad_rollback(step, context):
        raise RuntimeError("cannot undo")

    async def boom(step, context):
        raise RuntimeError("boom")

    registry = StepHandlerRegistry()
    registry.register("ok", FunctionStepHandler(ok, bad_rollback))
    registry.register("boom", boom)
    executor = ScenarioExecutor(registry=registry, config=fast_config)

    result = await executor.execute_workflow(
        _definition(
            ExecutionStep(id="a", kind="ok"),
            ExecutionStep(id="b", kind="boom", dependencies=["a"]),
            rollback_on_failure=True,
        )
    )

    assert result.rolled_back_steps == ["a"]
    assert result.results == {}
    assert any("Rollback of step 'a' failed: cannot undo" in e for e in result.errors)


@pytest.mark.asyncio
async def test_failure_without_rollback_continues(custom_executor, recorder):
    definition = _definition(
        ExecutionStep(id="a", kind="boom", max_retries=0),
        ExecutionStep(id="b", kind="ok"),
    )

    result = await custom_executor.execute_workflow(definition)

    assert result.completed_steps == ["b"]
    assert result.failed_steps == ["a"]
    assert result.success is False
    assert "Review failed steps and fix underlying issues" in result.summary.recommendations


@pytest.mark.asyncio
async def test_condition_false_skips_step(custom_executor, recorder):
    definition = _definition(
        ExecutionStep(id="a", kind="ok"),
        ExecutionStep(id="maybe", kind="ok", condition=lambda ctx: "a" not in ctx.step_results),
    )

    result = await custom_executor.execute_workflow(definition)

    assert result.success is True
    assert result.skipped_steps == ["maybe"]
    assert recorder.calls == ["a"]
    assert any("Review step conditions" in r for r in result.summary.recommendations)


@pytest.mark.asyncio
async def test_raising_condition_fails_step(custom_executor, recorder):
    def broken(ctx):
        raise KeyError("flag")

    result = await custom_executor.execute_workflow(
        _definition(ExecutionStep(id="a", kind="ok", condition=broken))
    )

    assert result.failed_steps == ["a"]
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_required_results_and_criteria(custom_executor):
    missing = await custom_executor.execute_workflow(
        _definition(ExecutionStep(id="a", kind="ok"), required_results=["a", "z"])
    )
    assert missing.success is False
    assert "Missing required result: z" in missing.errors

    def explode(results):
        raise ValueError("bad criteria")

    raising = await custom_executor.execute_workflow(
        _definition(ExecutionStep(id="a", kind="ok"), success_criteria=explode)
    )
    assert raising.success is False
    assert any("Success criteria raised: bad criteria" in e for e in raising.errors)

    passing = await custom_executor.execute_workflow(
        _definition(
            ExecutionStep(id="a", kind="ok"),
            required_results=["a"],
            success_criteria=lambda results: results["a"] == {"step": "a"},
        )
    )
    assert passing.success is True


@pytest.mark.asyncio
async def test_bottleneck_detection(custom_executor):
    steps = [ExecutionStep(id=f"fast{i}", kind="ok") for i in range(4)]
    steps.append(ExecutionStep(id="heavy", kind="slow", parameters={"sleep": 0.2}))

    result = await custom_executor.execute_workflow(_definition(*steps))

    assert result.summary.bottleneck_steps == ["heavy"]
    assert "Optimize performance of bottleneck steps: heavy" in result.summary.recommendations


@pytest.mark.asyncio
async def test_global_state_is_copied_per_run(fast_config):
    async def bump(step, context):
        context.global_state["counter"] += 1
        return context.global_state["counter"]

    registry = StepHandlerRegistry()
    registry.register("bump", bump)
    executor = ScenarioExecutor(registry=registry, config=fast_config)
    definition = WorkflowDefinition(
        id="wf-state",
        name="state",
        steps=[ExecutionStep(id="b", kind="bump")],
        global_configuration={"counter": 0},
    )

    first, second = await executor.execute_batch([definition, definition], concurrent=True)

    assert first.results == {"b": 1}
    assert second.results == {"b": 1}
    assert first.execution_id != second.execution_id
    assert definition.global_configuration == {"counter": 0}


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrent", [False, True])
async def test_batch_isolates_structural_errors(custom_executor, concurrent):
    good = _definition(ExecutionStep(id="a", kind="ok"))
    cyclic = WorkflowDefinition(
        id="wf-cyclic",
        name="cyclic",
        steps=[
            ExecutionStep(id="x", kind="ok", dependencies=["y"]),
            ExecutionStep(id="y", kind="ok", dependencies=["x"]),
        ],
    )

    results = await custom_executor.execute_batch([good, cyclic, good], concurrent=concurrent)

    assert [r.success for r in results] == [True, False, True]
    assert results[1].workflow_id == "wf-cyclic"
    assert "Circular dependency detected" in results[1].errors[0]
    assert results[1].summary.recommendations == ["Fix critical errors before retry"]


@pytest.mark.asyncio
async def test_multi_step_scenario_requires_every_result(custom_executor):
    result = await custom_executor.execute_multi_step_scenario(
        [
            {"id": "one", "kind": "ok"},
            {"id": "two", "kind": "ok", "dependencies": ["one"]},
        ],
        global_config={"env": "test"},
    )

    assert result.success is True
    assert result.workflow_id.startswith("multi-step-")
    assert result.completed_steps == ["one", "two"]


@pytest.mark.asyncio
async def test_cancel_stops_before_next_step(fast_config):
    seen = {}
    executor = None

    async def cancel_self(step, context):
        seen["active"] = executor.get_active_executions()
        seen["status"] = executor.get_execution_status(context.execution_id)
        seen["cancelled"] = executor.cancel_execution(context.execution_id)
        return "finished anyway"

    async def never(step, context):
        seen["never"] = True

    registry = StepHandlerRegistry()
    registry.register("cancel_self", cancel_self)
    registry.register("never", never)
    executor = ScenarioExecutor(registry=registry, config=fast_config)

    result = await executor.execute_workflow(
        _definition(
            ExecutionStep(id="first", kind="cancel_self"),
            ExecutionStep(id="second", kind="never"),
        )
    )

    assert seen["active"] == [result.execution_id]
    assert seen["status"].execution_id == result.execution_id
    assert seen["cancelled"] is True
    assert "never" not in seen
    assert result.completed_steps == ["first"]
    assert result.success is False
    assert "Execution cancelled" in result.errors
    assert executor.get_active_executions() == []
    assert executor.cancel_execution(result.execution_id) is False


@pytest.mark.asyncio
async def test_register_step_handler_replaces(custom_executor):
    async def replacement(step, context):
        return "new"

    custom_executor.register_step_handler("ok", replacement)
    result = await custom_executor.execute_workflow(_definition(ExecutionStep(id="a", kind="ok")))

    assert result.results == {"a": "new"}


@pytest.mark.asyncio
async def test_execution_id_bound_as_correlation_id(fast_config):
    seen = []

    async def capture(step, context):
        seen.append((get_correlation_id(), context.execution_id))

    registry = StepHandlerRegistry()
    registry.register("capture", capture)
    executor = ScenarioExecutor(registry=registry, config=fast_config)

    set_correlation_id("outer")
    await executor.execute_workflow(_definition(ExecutionStep(id="c", kind="capture")))

    assert seen[0][0] == seen[0][1]
    assert get_correlation_id() == "outer"


@pytest.mark.asyncio
async def test_workflow_metrics_exported(custom_executor):
    await custom_executor.execute_workflow(_definition(ExecutionStep(id="a", kind="ok")))

    output = export_metrics()
    assert b"synthgen_workflows_total" in output
    assert b"synthgen_step_attempts_total" in output
