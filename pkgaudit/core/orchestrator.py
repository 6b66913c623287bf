"""Audit pipeline orchestrator: the central coordinator for audit runs.

A run walks a fixed state sequence::

    idle -> booting -> installing -> configuring_registry -> auditing -> succeeded

with ``failed`` reachable from every non-terminal state.  The orchestrator
acquires the sandbox through the provisioner, writes the manifest, then
walks the step table, spawning each step's command through the process
runner.  Whether a step's non-zero exit fails the run is decided by the
step's policy flag, never by special cases here: the audit command exits
non-zero when it finds vulnerabilities, and that is a successful run.

Only one run may be in flight per orchestrator, because every run mutates
the same sandbox workspace in place.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pkgaudit.core.errors import PipelineError, ProcessExitedNonZero
from pkgaudit.core.manifest_writer import ManifestWriter
from pkgaudit.core.process_runner import ProcessRunner
from pkgaudit.core.provisioner import EnvironmentProvisioner
from pkgaudit.core.report_parser import parse_audit_output
from pkgaudit.core.state_machine import Listener, RunStateMachine
from pkgaudit.models.config import PipelineConfig
from pkgaudit.models.pipeline import PipelineState, StateTransition, StepDefinition
from pkgaudit.models.report import AuditReport
from pkgaudit.models.selection import DependencySelection
from pkgaudit.sandbox import create_backend
from pkgaudit.sandbox.base import Environment

if TYPE_CHECKING:
    from pkgaudit.config import AuditSettings

logger = logging.getLogger(__name__)


class AuditOrchestrator:
    """Runs audits against a single provisioned sandbox.

    Parameters
    ----------
    provisioner:
        Owner of the sandbox environment.
    runner:
        Process runner.  Built from ``config.max_output_bytes`` if omitted.
    manifest_writer:
        Manifest writer.  Built from the config's manifest identity if omitted.
    config:
        Pipeline configuration.  Uses defaults if not provided.
    """

    def __init__(
        self,
        provisioner: EnvironmentProvisioner,
        *,
        runner: ProcessRunner | None = None,
        manifest_writer: ManifestWriter | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.provisioner = provisioner
        self.runner = runner or ProcessRunner(max_output_bytes=self.config.max_output_bytes)
        self.manifest_writer = manifest_writer or ManifestWriter(
            self.config.manifest_name,
            self.config.manifest_version,
            path=self.config.manifest_path,
        )
        self.state_machine = RunStateMachine()
        self._lock = asyncio.Lock()

        # Outcome of the most recent run
        self.report: AuditReport | None = None
        self.error: PipelineError | None = None
        self.raw_output: bytes | None = None

    @classmethod
    def from_settings(cls, settings: AuditSettings) -> AuditOrchestrator:
        """Wire an orchestrator to the backend named in *settings*."""
        provisioner = EnvironmentProvisioner(create_backend(settings))
        return cls(provisioner, config=PipelineConfig.from_settings(settings))

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self.state_machine.state

    @property
    def run_id(self) -> str:
        return self.state_machine.run_id

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def history(self) -> list[StateTransition]:
        return self.state_machine.history()

    def subscribe(self, listener: Listener) -> None:
        """Receive a ``StateTransition`` for every state change."""
        self.state_machine.subscribe(listener)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def run_audit(self, selection: DependencySelection) -> AuditReport | None:
        """Audit *selection* in the sandbox.

        Returns the report on success.  Returns ``None`` without touching
        any state when the selection is empty or another run is in flight.
        Raises the run's ``PipelineError`` after moving to ``failed``.
        """
        if not selection:
            logger.debug("Empty selection; nothing to audit")
            return None
        # Checked without awaiting so a re-entrant call never queues.
        if self._lock.locked():
            logger.warning(
                "Audit run %s is still %s; ignoring new request",
                self.run_id, self.state.value,
            )
            return None

        async with self._lock:
            return await self._execute(selection)

    async def _execute(self, selection: DependencySelection) -> AuditReport:
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        run_id = f"pa-{ts}-{uuid.uuid4().hex[:6]}"
        self.state_machine.begin_run(run_id)
        self.report = None
        self.error = None
        self.raw_output = None
        logger.info("Run %s: auditing %s", run_id, ", ".join(selection.names()))

        self.state_machine.transition(PipelineState.BOOTING)
        try:
            environment = await self.provisioner.acquire()
            if self.config.clean_workspace:
                await self.manifest_writer.clean(environment, self.config.clean_paths)
            await self.manifest_writer.write(environment, selection)

            payload = b""
            for step in self.config.steps:
                self.state_machine.transition(step.state, step_id=step.step_id)
                output = await self._run_step(environment, step)
                if step.captures_output:
                    payload = output

            self.raw_output = payload
            report = parse_audit_output(payload)
        except PipelineError as exc:
            self.error = exc
            logger.error("Run %s failed (%s): %s", run_id, exc.kind, exc)
            self.state_machine.transition(PipelineState.FAILED, error=exc)
            raise
        except (Exception, asyncio.CancelledError) as exc:
            logger.exception("Run %s aborted by unexpected error", run_id)
            self.state_machine.transition(PipelineState.FAILED, error=exc)
            raise

        self.report = report
        self.state_machine.transition(PipelineState.SUCCEEDED)
        logger.info(
            "Run %s: %d vulnerabilities found",
            run_id, report.metadata.vulnerabilities.total,
        )
        return report

    async def _run_step(self, environment: Environment, step: StepDefinition) -> bytes:
        """Spawn one step, wait for it, and apply its exit policy.

        Returns the step's stdout when the step captures output.  If the
        run is interrupted while the step is running, the step's process is
        killed and reaped before the interruption propagates.
        """
        handle = await self.runner.spawn(environment, step.command, step.args)
        try:
            exit_code = await handle.wait()
        except BaseException:
            await handle.kill()
            raise

        if handle.output.truncated:
            logger.warning(
                "Output of %s exceeded %s bytes and was truncated",
                step.step_id, handle.output.max_bytes,
            )

        if exit_code != 0:
            if step.fatal_on_nonzero_exit:
                raise ProcessExitedNonZero(step.step_id, exit_code, handle.stderr.snapshot())
            if step.captures_output:
                logger.info("%s exited with %d; treating output as its result", step.step_id, exit_code)
            else:
                logger.warning("%s exited with %d; continuing", step.step_id, exit_code)

        return handle.output.snapshot() if step.captures_output else b""
