"""Pipeline state machine models and the per-step exit policy table."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EnvironmentState(str, Enum):
    """Readiness of the single sandbox environment."""

    NOT_BOOTED = "not_booted"
    BOOTING = "booting"
    READY = "ready"
    BOOT_FAILED = "boot_failed"


class PipelineState(str, Enum):
    """States of a single audit run."""

    IDLE = "idle"
    BOOTING = "booting"
    INSTALLING = "installing"
    CONFIGURING_REGISTRY = "configuring_registry"
    AUDITING = "auditing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Valid state transitions, enforced by RunStateMachine.
# Terminal states only lead back to IDLE, which starts the next run.
VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.BOOTING},
    PipelineState.BOOTING: {PipelineState.INSTALLING, PipelineState.FAILED},
    PipelineState.INSTALLING: {PipelineState.CONFIGURING_REGISTRY, PipelineState.FAILED},
    PipelineState.CONFIGURING_REGISTRY: {PipelineState.AUDITING, PipelineState.FAILED},
    PipelineState.AUDITING: {PipelineState.SUCCEEDED, PipelineState.FAILED},
    PipelineState.SUCCEEDED: {PipelineState.IDLE},
    PipelineState.FAILED: {PipelineState.IDLE},
}

TERMINAL_STATES: frozenset[PipelineState] = frozenset(
    {PipelineState.SUCCEEDED, PipelineState.FAILED}
)


class StepDefinition(BaseModel):
    """One external process the pipeline spawns.

    ``fatal_on_nonzero_exit`` is the whole exit-code policy for the step:
    install must succeed, the registry tweak is best-effort, and the audit
    reports findings through its exit code.
    """

    model_config = ConfigDict(frozen=True)

    step_id: str
    state: PipelineState
    command: str
    args: tuple[str, ...] = ()
    fatal_on_nonzero_exit: bool = True
    captures_output: bool = False  # stdout becomes the run's result payload


class StateTransition(BaseModel):
    """Records a single state change, delivered to subscribers."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    run_id: str
    from_state: PipelineState
    to_state: PipelineState
    step_id: str | None = None
    error: BaseException | None = None
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


def default_steps(npm_command: str = "npm") -> list[StepDefinition]:
    """The standard install → configure → audit sequence."""
    return [
        StepDefinition(
            step_id="install",
            state=PipelineState.INSTALLING,
            command=npm_command,
            args=("install",),
        ),
        StepDefinition(
            step_id="configure_registry",
            state=PipelineState.CONFIGURING_REGISTRY,
            command="sh",
            args=("-c", 'echo "progress=false" > .npmrc'),
            fatal_on_nonzero_exit=False,
        ),
        StepDefinition(
            step_id="audit",
            state=PipelineState.AUDITING,
            command=npm_command,
            args=("audit", "--json"),
            fatal_on_nonzero_exit=False,
            captures_output=True,
        ),
    ]


DEFAULT_STEPS: list[StepDefinition] = default_steps()
