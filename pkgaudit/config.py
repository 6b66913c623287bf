"""Runtime configuration: env-driven via pydantic-settings.

Reads from a ``.env`` file and ``PKGAUDIT_*`` environment variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class AuditSettings(BaseSettings):
    """Settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export PKGAUDIT_BACKEND=docker
        export PKGAUDIT_DOCKER_IMAGE=node:22-slim
        export PKGAUDIT_LOG_LEVEL=DEBUG

    Or via .env file::

        PKGAUDIT_SANDBOX_ROOT=/var/tmp/pkgaudit
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PKGAUDIT_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"

    # Sandbox backend
    backend: Literal["local", "docker"] = "local"
    sandbox_root: Path | None = None  # parent dir for local sandboxes; system temp if unset
    keep_sandbox: bool = False  # leave the sandbox behind at process exit
    npm_command: str = "npm"
    docker_command: str = "docker"
    docker_image: str = "node:20-slim"

    # Manifest identity written into the sandbox
    manifest_name: str = "npm-package-auditor"
    manifest_version: str = "1.0.0"

    # Pipeline behaviour
    clean_workspace: bool = True
    max_output_bytes: int = 64 * 1024 * 1024


# Module-level singleton; import as `from pkgaudit.config import settings`
settings = AuditSettings()
