"""
Generic multi-step wizard engine.

Sequences an ordered list of steps and mediates forward/back/cancel/
complete transitions. The engine knows nothing about reminders: the
caller supplies the steps, a function that builds the final result, and
hooks for completion and reset.

Transition rules:
- go_next() runs a step's guard only when the step may be attempted
  (by default: when is_valid() holds) and leaves the step only when
  is_valid() holds after the guard
- A guard returning False, or raising, leaves the wizard on the same step
- go_next() on the last step completes the wizard instead of wrapping
- go_back() is never validated and clamps at the first step
- Only one go_next()/complete() may be in flight per wizard key; a second
  call fails fast with Busy instead of invoking the guard twice
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar
from uuid import uuid4

from reminders.busy import BusyRegistry

logger = logging.getLogger("wizard")

T = TypeVar("T")

# Async predicate that may block advancement pending an external call
Guard = Callable[[], Awaitable[bool]]


@dataclass
class WizardStep:
    """
    One step of a wizard.

    Attributes:
        id: Stable step identifier
        title: Human-readable title
        is_valid: Side-effect-free predicate, may be called repeatedly
        on_advance: Optional async guard; False blocks advancement
        can_attempt: Optional precondition for running the guard.
            Defaults to is_valid. A step whose guard is what makes it
            valid (e.g. fetching generated content) overrides this.
        description: Optional help text for the rendering layer
    """
    id: str
    title: str
    is_valid: Callable[[], bool]
    on_advance: Optional[Guard] = None
    can_attempt: Optional[Callable[[], bool]] = None
    description: str = ""

    def ready_to_advance(self) -> bool:
        if self.can_attempt is not None:
            return self.can_attempt()
        return self.is_valid()


class WizardEngine(Generic[T]):
    """
    Step sequencer with guarded forward navigation.

    Example usage:
        engine = WizardEngine(
            steps=[WizardStep("name", "Name", lambda: bool(form.name))],
            build_result=lambda: dict(form),
            on_reset=form.clear,
        )
        await engine.go_next()   # completes, since "name" is the last step
    """

    def __init__(
        self,
        steps: list[WizardStep],
        build_result: Callable[[], T],
        on_complete: Optional[Callable[[T], Awaitable[Any]]] = None,
        on_reset: Optional[Callable[[], None]] = None,
        key: Optional[str] = None,
        busy: Optional[BusyRegistry] = None,
    ):
        """
        Initialize the engine.

        Args:
            steps: Ordered, non-empty list of steps
            build_result: Assembles the result handed over on completion
            on_complete: Async hook receiving the result before the reset
            on_reset: Clears the caller's draft state
            key: Identifies this wizard in the busy registry
            busy: Shared busy registry (defaults to a private one)
        """
        if not steps:
            raise ValueError("A wizard needs at least one step")

        self.steps = list(steps)
        self.build_result = build_result
        self.on_complete = on_complete
        self.on_reset = on_reset
        self.key = key or f"wizard-{uuid4().hex[:8]}"
        self.busy = busy or BusyRegistry()

        self._index = 0
        self.last_result: Optional[T] = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_step(self) -> WizardStep:
        return self.steps[self._index]

    @property
    def is_first_step(self) -> bool:
        return self._index == 0

    @property
    def is_last_step(self) -> bool:
        return self._index == len(self.steps) - 1

    @property
    def in_flight(self) -> bool:
        return self.busy.is_busy(self.key)

    def can_go_next(self) -> bool:
        """Whether the forward control should be enabled right now."""
        return not self.in_flight and self.current_step.ready_to_advance()

    def step_index(self, step_id: str) -> int:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        raise KeyError(step_id)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def go_next(self) -> bool:
        """
        Try to move to the next step, or complete on the last step.

        Returns:
            True if the wizard advanced or completed, False otherwise

        Raises:
            Busy: If another go_next()/complete() is in flight
            Exception: Whatever the step's guard raised (step is unchanged)
        """
        async with self.busy.hold(self.key, "advance"):
            step = self.current_step
            if not step.ready_to_advance():
                logger.debug(f"[{self.key}] Step '{step.id}' not ready, staying")
                return False

            index = self._index

            if step.on_advance is not None:
                allowed = await step.on_advance()
                if not allowed:
                    logger.info(f"[{self.key}] Guard blocked step '{step.id}'")
                    return False
                if self._index != index:
                    # The user navigated away while the guard was running
                    logger.info(f"[{self.key}] Step changed during guard, discarding advance")
                    return False

            if not step.is_valid():
                return False

            if self.is_last_step:
                await self._finish()
                return True

            self._index += 1
            logger.info(f"[{self.key}] Advanced to step '{self.current_step.id}' ({self._index})")
            return True

    def go_back(self) -> int:
        """Move to the previous step (clamped at 0). Never validated."""
        if self._index > 0:
            self._index -= 1
            logger.debug(f"[{self.key}] Back to step '{self.current_step.id}'")
        return self._index

    def reset(self) -> None:
        """Clear the draft state and return to the first step."""
        if self.on_reset is not None:
            self.on_reset()
        self._index = 0

    async def complete(self) -> Optional[T]:
        """
        Complete the wizard from its final step.

        Returns:
            The assembled result, or None if the wizard is not on its final
            step or the final step is not valid
        """
        if not self.is_last_step or not self.current_step.is_valid():
            return None
        async with self.busy.hold(self.key, "complete"):
            return await self._finish()

    def cancel(self) -> None:
        """Discard the draft without handing anything to the caller."""
        logger.info(f"[{self.key}] Wizard cancelled at step '{self.current_step.id}'")
        self.reset()

    async def _finish(self) -> Optional[T]:
        result = self.build_result()
        if self.on_complete is not None:
            # A failing hook propagates and keeps the draft for a retry
            await self.on_complete(result)
        self.last_result = result
        logger.info(f"[{self.key}] Wizard completed")
        self.reset()
        return result
