"""Run state machine for the audit pipeline.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- One transition history per run
- Every transition delivered to subscribers in order
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pkgaudit.models.pipeline import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    PipelineState,
    StateTransition,
)

logger = logging.getLogger(__name__)

Listener = Callable[[StateTransition], None]


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class RunStateMachine:
    """Tracks the state of the current audit run and notifies listeners."""

    def __init__(self) -> None:
        self._state = PipelineState.IDLE
        self._run_id = ""
        self._history: list[StateTransition] = []
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        """Whether a run is between IDLE and a terminal state."""
        return self._state not in TERMINAL_STATES and self._state != PipelineState.IDLE

    def history(self) -> list[StateTransition]:
        """Transitions of the current run, oldest first."""
        return list(self._history)

    def begin_run(self, run_id: str) -> None:
        """Reset to IDLE for a new run.  Not reported to listeners."""
        if self.is_active:
            raise InvalidTransitionError(
                f"Cannot begin run {run_id}: run {self._run_id} is {self._state.value}"
            )
        self._state = PipelineState.IDLE
        self._run_id = run_id
        self._history = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self,
        target_state: PipelineState,
        *,
        step_id: str | None = None,
        error: BaseException | None = None,
    ) -> StateTransition:
        """Move to *target_state*, record it, and notify listeners."""
        current = self._state
        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from {current.value} to {target_state.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        record = StateTransition(
            run_id=self._run_id,
            from_state=current,
            to_state=target_state,
            step_id=step_id,
            error=error,
        )
        self._state = target_state
        self._history.append(record)
        logger.info("Run %s: %s -> %s", self._run_id, current.value, target_state.value)

        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception:
                logger.exception("State listener %r failed", listener)

        return record
