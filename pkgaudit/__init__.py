"""pkgaudit: npm dependency auditing inside a disposable sandbox.

A dependency selection (one package, or the dependencies of a
``package.json``) is installed into an isolated environment and scanned
with ``npm audit``; the structured result comes back as an ``AuditReport``.
"""

__version__ = "0.1.0"
__description__ = "Sandboxed npm dependency audit pipeline"

from pkgaudit.core.errors import PipelineError
from pkgaudit.core.orchestrator import AuditOrchestrator
from pkgaudit.models.report import AuditReport
from pkgaudit.models.selection import DependencySelection

__all__ = [
    "AuditOrchestrator",
    "AuditReport",
    "DependencySelection",
    "PipelineError",
    "__version__",
]
