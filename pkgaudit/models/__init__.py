"""pkgaudit data models: Pydantic v2, frozen."""

from pkgaudit.models.config import PipelineConfig
from pkgaudit.models.pipeline import (
    DEFAULT_STEPS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    EnvironmentState,
    PipelineState,
    StateTransition,
    StepDefinition,
    default_steps,
)
from pkgaudit.models.report import (
    AuditMetadata,
    AuditReport,
    Cvss,
    DependencyCounts,
    FixInfo,
    Severity,
    SeverityCounts,
    ViaAdvisory,
    Vulnerability,
)
from pkgaudit.models.selection import (
    Dependency,
    DependencySelection,
    PackageManifest,
    load_manifest,
    parse_package_spec,
)

__all__ = [
    # pipeline
    "EnvironmentState",
    "PipelineState",
    "StateTransition",
    "StepDefinition",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "DEFAULT_STEPS",
    "default_steps",
    # selection
    "Dependency",
    "DependencySelection",
    "PackageManifest",
    "load_manifest",
    "parse_package_spec",
    # report
    "Severity",
    "Cvss",
    "ViaAdvisory",
    "FixInfo",
    "Vulnerability",
    "SeverityCounts",
    "DependencyCounts",
    "AuditMetadata",
    "AuditReport",
    # config
    "PipelineConfig",
]
