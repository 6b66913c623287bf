"""Isolated environment protocols.

An :class:`Environment` is a disposable workspace with its own filesystem
in which external commands can be launched.  A :class:`SandboxBackend`
knows how to boot one.  The pipeline only talks to these protocols, so a
local temp-dir sandbox and a container sandbox are interchangeable.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Protocol, runtime_checkable


@runtime_checkable
class Environment(Protocol):
    """A booted, long-lived sandbox handle."""

    environment_id: str
    workdir: str

    @property
    def is_ready(self) -> bool:
        """``True`` until the environment is closed."""
        ...

    @property
    def host_cwd(self) -> str | None:
        """Host working directory for launched commands, if any."""
        ...

    def command_argv(self, command: str, args: list[str]) -> list[str]:
        """Host argv that runs *command* with *args* inside the sandbox."""
        ...

    def process_env(self) -> dict[str, str] | None:
        """Environment variables for launched commands (``None`` inherits)."""
        ...

    async def write_file(self, relative_path: str, data: bytes) -> None:
        """Create or overwrite a file in the workspace."""
        ...

    async def remove_path(self, relative_path: str) -> None:
        """Delete a file or directory tree in the workspace if it exists."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class SandboxBackend(Protocol):
    """Boots :class:`Environment` instances."""

    name: str

    async def boot(self) -> Environment:
        """Start a fresh environment or raise ``EnvironmentBootFailed``."""
        ...


def workspace_relative(relative_path: str) -> PurePosixPath:
    """Validate a workspace-relative path.

    Absolute paths and ``..`` components are rejected so callers cannot
    reach outside the sandbox workspace.
    """
    path = PurePosixPath(relative_path)
    if not relative_path or path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Path must stay inside the workspace: {relative_path!r}")
    return path
