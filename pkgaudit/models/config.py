"""Pipeline configuration model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from pkgaudit.models.pipeline import StepDefinition, default_steps

if TYPE_CHECKING:
    from pkgaudit.config import AuditSettings


class PipelineConfig(BaseModel):
    """Per-orchestrator configuration: manifest identity and the step table."""

    model_config = ConfigDict(frozen=True)

    manifest_name: str = "npm-package-auditor"
    manifest_version: str = "1.0.0"
    manifest_path: str = "package.json"
    clean_workspace: bool = True
    clean_paths: tuple[str, ...] = ("package-lock.json", "node_modules")
    max_output_bytes: int = 64 * 1024 * 1024
    steps: list[StepDefinition] = Field(default_factory=default_steps)

    @classmethod
    def from_settings(cls, settings: AuditSettings) -> PipelineConfig:
        return cls(
            manifest_name=settings.manifest_name,
            manifest_version=settings.manifest_version,
            clean_workspace=settings.clean_workspace,
            max_output_bytes=settings.max_output_bytes,
            steps=default_steps(settings.npm_command),
        )
