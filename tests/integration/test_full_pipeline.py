"""Integration test: a full audit run through a real local sandbox.

The sandbox, process runner and manifest writer are the production
classes.  Only the step commands are swapped for small Python scripts so
the run does not need npm or network access.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

import pytest

from pkgaudit.core.errors import OutputParseFailed, ProcessExitedNonZero
from pkgaudit.core.orchestrator import AuditOrchestrator
from pkgaudit.core.provisioner import EnvironmentProvisioner
from pkgaudit.models.config import PipelineConfig
from pkgaudit.models.pipeline import PipelineState, StepDefinition
from pkgaudit.models.selection import DependencySelection
from pkgaudit.sandbox.local import LocalSandboxBackend

# Reads package.json and records the install the way npm would.
INSTALL_SCRIPT = """
import json, os, sys
manifest = json.load(open("package.json"))
if "missing-package" in manifest["dependencies"]:
    sys.stderr.write("npm ERR! 404 Not Found - missing-package")
    sys.exit(1)
os.makedirs("node_modules", exist_ok=True)
json.dump(manifest["dependencies"], open("package-lock.json", "w"))
"""

CONFIGURE_SCRIPT = """
open(".npmrc", "w").write("progress=false\\n")
"""

# Prints the report given in argv[1] and exits 1 when it has findings.
AUDIT_SCRIPT = """
import json, sys
report = sys.argv[1]
sys.stdout.write(report)
sys.exit(1 if json.loads(report).get("metadata", {}).get("vulnerabilities", {}).get("total") else 0)
"""

# Records its pid in argv[1], then hangs like a stalled install.
HANGING_INSTALL_SCRIPT = """
import os, sys, time
open(sys.argv[1], "w").write(str(os.getpid()))
time.sleep(30)
"""


def _steps(audit_payload: str) -> list[StepDefinition]:
    return [
        StepDefinition(
            step_id="install",
            state=PipelineState.INSTALLING,
            command=sys.executable,
            args=("-c", INSTALL_SCRIPT),
        ),
        StepDefinition(
            step_id="configure_registry",
            state=PipelineState.CONFIGURING_REGISTRY,
            command=sys.executable,
            args=("-c", CONFIGURE_SCRIPT),
            fatal_on_nonzero_exit=False,
        ),
        StepDefinition(
            step_id="audit",
            state=PipelineState.AUDITING,
            command=sys.executable,
            args=("-c", AUDIT_SCRIPT, audit_payload),
            fatal_on_nonzero_exit=False,
            captures_output=True,
        ),
    ]


def _orchestrator(
    tmp_path: Path, audit_payload: str, steps: list[StepDefinition] | None = None
) -> AuditOrchestrator:
    backend = LocalSandboxBackend((sys.executable,), sandbox_root=tmp_path, keep_sandbox=True)
    return AuditOrchestrator(
        EnvironmentProvisioner(backend),
        config=PipelineConfig(steps=steps or _steps(audit_payload)),
    )


async def _wait_for_file(path: Path, timeout: float = 10.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not path.exists() or not path.read_text():
        if asyncio.get_running_loop().time() > deadline:
            raise TimeoutError(f"{path} was never written")
        await asyncio.sleep(0.02)


class TestFullPipeline:
    @pytest.mark.asyncio
    async def test_findings_reported_on_nonzero_audit_exit(
        self, tmp_path: Path, vulnerable_audit: dict[str, Any]
    ):
        orchestrator = _orchestrator(tmp_path, json.dumps(vulnerable_audit))
        states: list[PipelineState] = []
        orchestrator.subscribe(lambda t: states.append(t.to_state))

        report = await orchestrator.run_audit(
            DependencySelection.from_pairs([("minimist", "0.0.8"), ("glob-parent", "5.0.0")])
        )

        assert report is not None
        assert report.metadata.vulnerabilities.total == 3
        assert report.is_consistent()
        assert states == [
            PipelineState.BOOTING,
            PipelineState.INSTALLING,
            PipelineState.CONFIGURING_REGISTRY,
            PipelineState.AUDITING,
            PipelineState.SUCCEEDED,
        ]

        workspace = Path(orchestrator.provisioner.environment.workdir)
        assert json.loads((workspace / "package.json").read_text())["dependencies"] == {
            "minimist": "0.0.8",
            "glob-parent": "5.0.0",
        }
        assert (workspace / ".npmrc").read_text() == "progress=false\n"

    @pytest.mark.asyncio
    async def test_second_run_reuses_sandbox_and_cleans_it(
        self, tmp_path: Path, clean_audit: dict[str, Any]
    ):
        orchestrator = _orchestrator(tmp_path, json.dumps(clean_audit))

        await orchestrator.run_audit(DependencySelection.single("left-pad"))
        first = orchestrator.provisioner.environment
        await orchestrator.run_audit(DependencySelection.single("lodash", "4.17.21"))

        assert orchestrator.provisioner.environment is first
        assert orchestrator.provisioner.boot_count == 1
        lock = json.loads((Path(first.workdir) / "package-lock.json").read_text())
        assert lock == {"lodash": "4.17.21"}

    @pytest.mark.asyncio
    async def test_install_failure_stops_the_run(
        self, tmp_path: Path, clean_audit: dict[str, Any]
    ):
        orchestrator = _orchestrator(tmp_path, json.dumps(clean_audit))

        with pytest.raises(ProcessExitedNonZero) as excinfo:
            await orchestrator.run_audit(DependencySelection.single("missing-package"))

        assert excinfo.value.command == "install"
        assert b"404" in excinfo.value.stderr
        assert orchestrator.state == PipelineState.FAILED
        assert [t.to_state for t in orchestrator.history()][-2:] == [
            PipelineState.INSTALLING,
            PipelineState.FAILED,
        ]

    @pytest.mark.asyncio
    async def test_garbled_audit_output(self, tmp_path: Path):
        orchestrator = _orchestrator(tmp_path, '{"auditReportVersion": 2, "vulnerabilities"')

        with pytest.raises(OutputParseFailed) as excinfo:
            await orchestrator.run_audit(DependencySelection.single("left-pad"))

        assert excinfo.value.raw_output == b'{"auditReportVersion": 2, "vulnerabilities"'
        assert orchestrator.state == PipelineState.FAILED

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
    async def test_cancelled_run_leaves_no_step_process(
        self, tmp_path: Path, clean_audit: dict[str, Any]
    ):
        pid_file = tmp_path / "install.pid"
        steps = _steps(json.dumps(clean_audit))
        steps[0] = steps[0].model_copy(
            update={"args": ("-c", HANGING_INSTALL_SCRIPT, str(pid_file))}
        )
        orchestrator = _orchestrator(tmp_path, "", steps=steps)

        task = asyncio.create_task(orchestrator.run_audit(DependencySelection.single("left-pad")))
        await _wait_for_file(pid_file)
        pid = int(pid_file.read_text())
        assert orchestrator.state == PipelineState.INSTALLING

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=10)

        assert orchestrator.state == PipelineState.FAILED
        assert not orchestrator.is_running
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
