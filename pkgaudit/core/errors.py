"""Pipeline error taxonomy.

Every failure of an audit run is one of these exceptions.  They are raised
where the failure happens, carry everything the caller needs to report it,
and reach the caller unchanged.  Nothing in the pipeline retries them.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for audit pipeline failures."""

    kind: str = "pipeline_error"


class EnvironmentBootFailed(PipelineError):
    """The isolated environment could not be started.

    Fatal for the run.  No environment was acquired, so the next run will
    attempt a fresh boot.
    """

    kind = "environment_boot_failed"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Environment failed to boot: {reason}")


class ManifestWriteFailed(PipelineError):
    """The dependency manifest could not be written into the environment."""

    kind = "manifest_write_failed"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Could not write manifest {path}: {reason}")


class ProcessSpawnFailed(PipelineError):
    """An external command could not be launched at all."""

    kind = "process_spawn_failed"

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Could not spawn {command!r}: {reason}")


class ProcessExitedNonZero(PipelineError):
    """A step whose exit code is fatal finished with a non-zero status."""

    kind = "process_exited_nonzero"

    def __init__(self, command: str, exit_code: int, stderr: bytes = b"") -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"{command!r} exited with code {exit_code}")


class OutputParseFailed(PipelineError):
    """The audit output did not decode into an audit report.

    ``raw_output`` is the exact byte buffer that was parsed.
    """

    kind = "output_parse_failed"

    def __init__(self, raw_output: bytes, reason: str) -> None:
        self.raw_output = raw_output
        self.reason = reason
        super().__init__(f"Could not parse audit output: {reason}")
