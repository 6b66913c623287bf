"""Environment provisioner: owns the one sandbox environment.

The environment is booted on first use and then reused for the lifetime of
the process.  Callers never tear it down.
"""

from __future__ import annotations

import asyncio
import logging

from pkgaudit.core.errors import EnvironmentBootFailed
from pkgaudit.models.pipeline import EnvironmentState
from pkgaudit.sandbox.base import Environment, SandboxBackend

logger = logging.getLogger(__name__)


class EnvironmentProvisioner:
    """Idempotent, single-flight access to the sandbox environment.

    Parameters
    ----------
    backend:
        The sandbox backend that performs the actual boot.
    """

    def __init__(self, backend: SandboxBackend) -> None:
        self._backend = backend
        self._environment: Environment | None = None
        self._boot_task: asyncio.Task[Environment] | None = None
        self._state = EnvironmentState.NOT_BOOTED
        self.boot_count = 0

    @property
    def state(self) -> EnvironmentState:
        return self._state

    @property
    def environment(self) -> Environment | None:
        return self._environment

    async def acquire(self) -> Environment:
        """Return the ready environment, booting it if none exists.

        Callers arriving while a boot is in flight wait on that same boot
        and receive its environment or its failure.  After a failure the
        next call starts a new boot.  An environment that is no longer
        ready is closed before its replacement is booted.
        """
        if self._environment is not None and self._environment.is_ready:
            return self._environment

        if self._boot_task is None or self._boot_task.done():
            stale, self._environment = self._environment, None
            if stale is not None:
                logger.warning("Sandbox %s is no longer ready; replacing it", stale.environment_id)
                stale.close()
            self._state = EnvironmentState.BOOTING
            self._boot_task = asyncio.get_running_loop().create_task(self._boot())

        # Shielded so one cancelled waiter does not abort the shared boot.
        return await asyncio.shield(self._boot_task)

    async def _boot(self) -> Environment:
        self.boot_count += 1
        logger.info("Booting %s sandbox (attempt %d)", self._backend.name, self.boot_count)
        try:
            environment = await self._backend.boot()
        except EnvironmentBootFailed as exc:
            self._state = EnvironmentState.BOOT_FAILED
            logger.error("Sandbox boot failed: %s", exc.reason)
            raise
        except Exception as exc:
            self._state = EnvironmentState.BOOT_FAILED
            logger.error("Sandbox boot failed: %s", exc)
            raise EnvironmentBootFailed(f"{type(exc).__name__}: {exc}") from exc

        self._environment = environment
        self._state = EnvironmentState.READY
        logger.info("Sandbox %s ready", environment.environment_id)
        return environment
