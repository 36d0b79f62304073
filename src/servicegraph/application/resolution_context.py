"""Application layer - Task-local resolution state."""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional, Tuple

from servicegraph.domain import CircularDependencyError


class ResolutionContext:
    """Tracks the build stack and the parameter-override stack of in-flight resolutions.

    Both stacks live in context variables, so every thread and every asyncio
    task sees its own frames: a factory that suspends mid-build cannot observe
    or corrupt another task's resolution. Frames are pushed and popped through
    context managers, so they are restored on every exit path.

    Attributes:
        _build_stack: Concrete classes (or factory markers) currently under construction.
        _parameter_stack: Explicit parameter frames, one per ``make`` with parameters.
    """

    def __init__(self) -> None:
        """Initialize the resolution context with empty per-task stacks."""
        self._build_stack: ContextVar[Tuple[Any, ...]] = ContextVar(f"build_stack_{id(self)}", default=())
        self._parameter_stack: ContextVar[Tuple[Dict[Any, Any], ...]] = ContextVar(
            f"parameter_stack_{id(self)}", default=()
        )

    @property
    def build_stack(self) -> Tuple[Any, ...]:
        """The current task's build stack, outermost entry first."""
        return self._build_stack.get()

    def current(self) -> Optional[Any]:
        """The entry on top of the build stack, or None when nothing is being built."""
        stack = self._build_stack.get()
        return stack[-1] if stack else None

    def is_building(self, concrete: Any) -> bool:
        """Determine if the concrete is already somewhere in the build stack."""
        return any(entry is concrete or entry == concrete for entry in self._build_stack.get())

    def ensure_not_building(self, concrete: Any) -> None:
        """Raise if building ``concrete`` would close a cycle.

        Raises:
            CircularDependencyError: If the concrete is already in the build stack.

        Example:
            >>> context = ResolutionContext()
            >>> with context.building(ServiceA):
            ...     context.ensure_not_building(ServiceA)  # Raises CircularDependencyError
        """
        stack = list(self._build_stack.get())
        if concrete in stack:
            raise CircularDependencyError(stack[stack.index(concrete) :] + [concrete])

    @contextmanager
    def building(self, concrete: Any) -> Iterator[None]:
        """Push ``concrete`` onto the build stack for the duration of the block."""
        token = self._build_stack.set(self._build_stack.get() + (concrete,))
        try:
            yield
        finally:
            self._build_stack.reset(token)

    @contextmanager
    def overriding(self, parameters: Dict[Any, Any]) -> Iterator[Dict[Any, Any]]:
        """Push a copy of ``parameters`` as the top parameter frame for the duration of the block.

        Yields:
            The pushed frame. Consumed overrides are removed from it.
        """
        frame = dict(parameters)
        token = self._parameter_stack.set(self._parameter_stack.get() + (frame,))
        try:
            yield frame
        finally:
            self._parameter_stack.reset(token)

    def last_parameter_override(self) -> Dict[Any, Any]:
        """The top parameter frame, or an empty mapping when none is active."""
        stack = self._parameter_stack.get()
        return stack[-1] if stack else {}

    def clear(self) -> None:
        """Reset both stacks in the current context.

        Useful for testing or error recovery.
        """
        self._build_stack.set(())
        self._parameter_stack.set(())
