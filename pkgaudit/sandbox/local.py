"""Local sandbox: a private temp directory with its own npm home and cache.

Commands run on the host with the workspace as their working directory.
``HOME``, the npm cache and the npm user config all point inside the
sandbox root, so a run never reads or writes the invoking user's npm state.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import Sequence
from pathlib import Path

from pkgaudit.core.errors import EnvironmentBootFailed
from pkgaudit.sandbox.base import workspace_relative

logger = logging.getLogger(__name__)


class LocalEnvironment:
    """A booted local sandbox rooted at *root*."""

    def __init__(self, root: Path, *, environment_id: str | None = None) -> None:
        self.root = root
        self.environment_id = environment_id or f"local-{uuid.uuid4().hex[:8]}"
        self._workspace = root / "workspace"
        self._home = root / "home"
        self._cache = root / "npm-cache"
        self.workdir = str(self._workspace)
        self._closed = False

    def prepare(self) -> None:
        for directory in (self._workspace, self._home, self._cache):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def is_ready(self) -> bool:
        return not self._closed and self._workspace.is_dir()

    @property
    def host_cwd(self) -> str | None:
        return self.workdir

    def command_argv(self, command: str, args: list[str]) -> list[str]:
        return [command, *args]

    def process_env(self) -> dict[str, str] | None:
        env = dict(os.environ)
        env.update(
            {
                "HOME": str(self._home),
                "npm_config_cache": str(self._cache),
                "npm_config_userconfig": str(self._home / ".npmrc"),
                "npm_config_update_notifier": "false",
                "npm_config_fund": "false",
            }
        )
        return env

    async def write_file(self, relative_path: str, data: bytes) -> None:
        target = self._workspace / workspace_relative(relative_path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)

    async def remove_path(self, relative_path: str) -> None:
        target = self._workspace / workspace_relative(relative_path)

        def _remove() -> None:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)

        await asyncio.to_thread(_remove)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        shutil.rmtree(self.root, ignore_errors=True)
        logger.debug("Removed local sandbox %s", self.root)


class LocalSandboxBackend:
    """Boots :class:`LocalEnvironment` instances.

    Parameters
    ----------
    required_tools:
        Executables that must be on ``PATH`` for a boot to succeed.
    sandbox_root:
        Parent directory for sandbox roots.  The system temp dir if ``None``.
    keep_sandbox:
        Leave the sandbox directory in place at interpreter exit.
    """

    name = "local"

    def __init__(
        self,
        required_tools: Sequence[str] = ("npm", "sh"),
        *,
        sandbox_root: Path | None = None,
        keep_sandbox: bool = False,
    ) -> None:
        self.required_tools = tuple(required_tools)
        self.sandbox_root = sandbox_root
        self.keep_sandbox = keep_sandbox

    async def boot(self) -> LocalEnvironment:
        missing = [tool for tool in self.required_tools if shutil.which(tool) is None]
        if missing:
            raise EnvironmentBootFailed(
                f"required tool(s) not found on PATH: {', '.join(missing)}"
            )

        if self.sandbox_root is not None:
            self.sandbox_root.mkdir(parents=True, exist_ok=True)
        root = Path(
            await asyncio.to_thread(
                tempfile.mkdtemp,
                prefix="pkgaudit-",
                dir=str(self.sandbox_root) if self.sandbox_root else None,
            )
        )
        environment = LocalEnvironment(root)
        await asyncio.to_thread(environment.prepare)

        if not self.keep_sandbox:
            atexit.register(environment.close)
        logger.info("Local sandbox %s ready at %s", environment.environment_id, root)
        return environment
