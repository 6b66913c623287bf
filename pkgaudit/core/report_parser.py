"""Decodes the audit command's output into an :class:`AuditReport`."""

from __future__ import annotations

import json

from pydantic import ValidationError

from pkgaudit.core.errors import OutputParseFailed
from pkgaudit.models.report import AuditReport


def parse_audit_output(raw: bytes) -> AuditReport:
    """Strictly decode *raw* into an ``AuditReport``.

    Any malformed JSON, missing required field or type mismatch raises
    ``OutputParseFailed`` carrying *raw* unmodified.  There is no partial
    result.
    """
    try:
        return AuditReport.model_validate_json(raw)
    except ValidationError as exc:
        raise OutputParseFailed(raw, _describe(raw, exc)) from exc


def _describe(raw: bytes, exc: ValidationError) -> str:
    if not raw.strip():
        return "audit produced no output"

    npm_error = _npm_error_summary(raw)
    if npm_error:
        return f"audit reported an error: {npm_error}"

    errors = exc.errors(include_url=False)
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    message = first.get("msg", str(exc))
    suffix = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
    return f"{location}: {message}{suffix}"


def _npm_error_summary(raw: bytes) -> str | None:
    """Extract npm's ``{"error": {"code", "summary"}}`` envelope, if present."""
    try:
        document = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(document, dict):
        return None
    error = document.get("error")
    if not isinstance(error, dict):
        return None
    code = error.get("code")
    summary = str(error.get("summary") or "").strip()
    if code and summary:
        return f"{code}: {summary}"
    return summary or (str(code) if code else None)
