"""Audit report models: the structured form of ``npm audit --json``.

Python attributes are snake_case; the wire document is camelCase
(``auditReportVersion``, ``isDirect``, ``fixAvailable``).  Scalar fields are
strict so a type mismatch in the tool's output is a decode failure rather
than a silent coercion.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    """npm advisory severity, ordered from least to most severe."""

    INFO = "info"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER: list[Severity] = [
    Severity.INFO,
    Severity.LOW,
    Severity.MODERATE,
    Severity.HIGH,
    Severity.CRITICAL,
]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Cvss(_WireModel):
    score: StrictInt | StrictFloat = 0
    vector_string: StrictStr | None = None


class ViaAdvisory(_WireModel):
    """An advisory entry in a vulnerability's ``via`` chain."""

    source: StrictInt
    name: StrictStr
    dependency: StrictStr
    title: StrictStr
    url: StrictStr
    severity: Severity
    cwe: list[StrictStr] = []
    cvss: Cvss | None = None
    range: StrictStr = ""


class FixInfo(_WireModel):
    """A concrete fix: installing ``name@version`` resolves the finding."""

    name: StrictStr
    version: StrictStr
    is_semver_major: StrictBool = Field(alias="isSemVerMajor")


class Vulnerability(_WireModel):
    """One vulnerable package in the resolved graph.

    ``via`` holds either package names (the finding is inherited through
    that dependency) or advisories (the package itself is affected).
    ``effects`` lists the packages that become vulnerable through this one.
    """

    name: StrictStr
    severity: Severity
    is_direct: StrictBool
    via: list[StrictStr | ViaAdvisory]
    effects: list[StrictStr]
    range: StrictStr
    nodes: list[StrictStr]
    fix_available: StrictBool | FixInfo = False

    @property
    def advisories(self) -> list[ViaAdvisory]:
        return [item for item in self.via if isinstance(item, ViaAdvisory)]


class SeverityCounts(_WireModel):
    info: StrictInt
    low: StrictInt
    moderate: StrictInt
    high: StrictInt
    critical: StrictInt
    total: StrictInt

    def get(self, severity: Severity) -> int:
        return getattr(self, severity.value)

    def severity_sum(self) -> int:
        return sum(self.get(severity) for severity in Severity)


class DependencyCounts(_WireModel):
    prod: StrictInt = 0
    dev: StrictInt = 0
    optional: StrictInt = 0
    peer: StrictInt = 0
    peer_optional: StrictInt = 0
    total: StrictInt = 0


class AuditMetadata(_WireModel):
    vulnerabilities: SeverityCounts
    dependencies: DependencyCounts | None = None


class AuditReport(_WireModel):
    """Parsed ``npm audit --json`` output.

    The aggregate counts are expected to sum to ``total`` and to agree with
    the vulnerability map grouped by severity.  The parser does not enforce
    this; use :meth:`is_consistent` to check a report.
    """

    audit_report_version: StrictInt
    vulnerabilities: dict[str, Vulnerability]
    metadata: AuditMetadata

    @property
    def has_findings(self) -> bool:
        return self.metadata.vulnerabilities.total > 0

    def counts_by_severity(self) -> SeverityCounts:
        """Derive aggregate counts from the vulnerability map."""
        counts = {severity.value: 0 for severity in Severity}
        for vuln in self.vulnerabilities.values():
            counts[vuln.severity.value] += 1
        return SeverityCounts(total=len(self.vulnerabilities), **counts)

    def is_consistent(self) -> bool:
        declared = self.metadata.vulnerabilities
        return (
            declared.severity_sum() == declared.total
            and declared == self.counts_by_severity()
        )

    def at_or_above(self, severity: Severity) -> list[Vulnerability]:
        """Vulnerabilities at *severity* or worse, most severe first."""
        matching = [
            vuln for vuln in self.vulnerabilities.values()
            if vuln.severity.rank >= severity.rank
        ]
        return sorted(matching, key=lambda v: (-v.severity.rank, v.name))

    def to_wire(self) -> bytes:
        """Encode back into the camelCase wire document."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
