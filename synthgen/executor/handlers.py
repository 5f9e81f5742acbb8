"""
Step handler protocol and registry.

A handler owns one step kind. The executor looks the kind up in a
:class:`StepHandlerRegistry` and awaits ``handler.execute(step, context)``;
on rollback it awaits ``handler.rollback(step, context)``.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from synthgen.executor.models import ExecutionContext, ExecutionStep, normalize_kind


@runtime_checkable
class StepHandler(Protocol):
    """
    Protocol for step handlers.

    ``execute`` returns the step result stored in ``context.step_results``.
    ``rollback`` undoes side effects of a completed step; the executor removes
    the stored result itself.
    """

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Any:
        ...

    async def rollback(self, step: ExecutionStep, context: ExecutionContext) -> None:
        ...


class BaseStepHandler:
    """Convenience base with a no-op rollback and simulated latency support."""

    kind: str = ""

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Any:
        raise NotImplementedError

    async def rollback(self, step: ExecutionStep, context: ExecutionContext) -> None:
        return None

    async def simulate_latency(self, step: ExecutionStep) -> None:
        """Sleep for ``parameters["simulated_latency_ms"]`` if set."""
        latency_ms = float(step.parameters.get("simulated_latency_ms", 0) or 0)
        if latency_ms > 0:
            await asyncio.sleep(latency_ms / 1000)


class FunctionStepHandler(BaseStepHandler):
    """
    Adapt a plain callable into a :class:`StepHandler`.

    Sync callables are accepted too; their return value is used directly.
    """

    def __init__(self, fn: Callable[..., Any], rollback_fn: Optional[Callable[..., Any]] = None):
        self._fn = fn
        self._rollback_fn = rollback_fn

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Any:
        result = self._fn(step, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def rollback(self, step: ExecutionStep, context: ExecutionContext) -> None:
        if self._rollback_fn is None:
            return
        result = self._rollback_fn(step, context)
        if inspect.isawaitable(result):
            await result


HandlerLike = Union[StepHandler, Callable[..., Any]]


def _as_handler(handler: HandlerLike) -> StepHandler:
    if isinstance(handler, StepHandler):
        return handler
    if callable(handler):
        return FunctionStepHandler(handler)
    raise TypeError(f"handler must implement StepHandler or be callable, got {type(handler).__name__}")


class StepHandlerRegistry:
    """
    Registry mapping step kinds to handlers.

    Not thread-safe; mutate it at setup time only.

    Example:
        >>> registry = StepHandlerRegistry()
        >>> async def ping(step, context):
        ...     return "pong"
        >>> registry.register("ping", ping)
        >>> registry.has_handler("ping")
        True
    """

    def __init__(self):
        self._handlers: Dict[str, StepHandler] = {}

    def register(self, kind: Any, handler: HandlerLike, replace: bool = False) -> None:
        """
        Register a handler for ``kind``.

        Args:
            kind: StepKind member or custom kind string
            handler: StepHandler instance or callable ``(step, context)``
            replace: Overwrite an existing registration instead of raising

        Raises:
            ValueError: If the kind is empty or already registered
            TypeError: If the handler is neither a StepHandler nor callable
        """
        key = normalize_kind(kind)
        if key in self._handlers and not replace:
            raise ValueError(f"Handler already registered for kind: {key}")
        self._handlers[key] = _as_handler(handler)

    def unregister(self, kind: Any) -> None:
        """Remove the handler for ``kind``; no-op if absent."""
        self._handlers.pop(normalize_kind(kind), None)

    def get(self, kind: Any) -> Optional[StepHandler]:
        return self._handlers.get(normalize_kind(kind))

    def has_handler(self, kind: Any) -> bool:
        return normalize_kind(kind) in self._handlers

    def list_kinds(self) -> List[str]:
        """Sorted list of registered kinds."""
        return sorted(self._handlers.keys())


__all__ = [
    "StepHandler",
    "BaseStepHandler",
    "FunctionStepHandler",
    "StepHandlerRegistry",
]
