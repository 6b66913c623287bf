"""Sandbox backends for the audit pipeline.

Usage::

    from pkgaudit.sandbox import create_backend

    backend = create_backend(settings)
    environment = await backend.boot()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pkgaudit.sandbox.base import Environment, SandboxBackend, workspace_relative
from pkgaudit.sandbox.docker import DockerEnvironment, DockerSandboxBackend
from pkgaudit.sandbox.local import LocalEnvironment, LocalSandboxBackend

if TYPE_CHECKING:
    from pkgaudit.config import AuditSettings


def create_backend(settings: AuditSettings) -> SandboxBackend:
    """Build the backend named by ``settings.backend``."""
    if settings.backend == "docker":
        return DockerSandboxBackend(
            settings.docker_image,
            docker_command=settings.docker_command,
            npm_command=settings.npm_command,
            keep_sandbox=settings.keep_sandbox,
        )
    if settings.backend == "local":
        return LocalSandboxBackend(
            (settings.npm_command, "sh"),
            sandbox_root=settings.sandbox_root,
            keep_sandbox=settings.keep_sandbox,
        )
    raise ValueError(f"Unknown sandbox backend: {settings.backend!r}")


__all__ = [
    "DockerEnvironment",
    "DockerSandboxBackend",
    "Environment",
    "LocalEnvironment",
    "LocalSandboxBackend",
    "SandboxBackend",
    "create_backend",
    "workspace_relative",
]
