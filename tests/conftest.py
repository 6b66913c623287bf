"""Shared test fixtures for pkgaudit."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from pkgaudit.core.errors import ProcessSpawnFailed
from pkgaudit.core.orchestrator import AuditOrchestrator
from pkgaudit.core.process_runner import OutputStream, ProcessHandle
from pkgaudit.core.provisioner import EnvironmentProvisioner
from pkgaudit.models.config import PipelineConfig
from pkgaudit.sandbox.base import workspace_relative


# ---------------------------------------------------------------------------
# Sample npm audit documents
# ---------------------------------------------------------------------------

CLEAN_AUDIT: dict[str, Any] = {
    "auditReportVersion": 2,
    "vulnerabilities": {},
    "metadata": {
        "vulnerabilities": {
            "info": 0, "low": 0, "moderate": 0, "high": 0, "critical": 0, "total": 0,
        },
        "dependencies": {
            "prod": 2, "dev": 0, "optional": 0, "peer": 0, "peerOptional": 0, "total": 1,
        },
    },
}

VULNERABLE_AUDIT: dict[str, Any] = {
    "auditReportVersion": 2,
    "vulnerabilities": {
        "minimist": {
            "name": "minimist",
            "severity": "critical",
            "isDirect": False,
            "via": [
                {
                    "source": 1096460,
                    "name": "minimist",
                    "dependency": "minimist",
                    "title": "Prototype Pollution in minimist",
                    "url": "https://github.com/advisories/GHSA-xvch-5gv4-984h",
                    "severity": "critical",
                    "cwe": ["CWE-1321"],
                    "cvss": {
                        "score": 9.8,
                        "vectorString": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
                    },
                    "range": "<0.2.4",
                }
            ],
            "effects": ["mkdirp"],
            "range": "<=0.2.3",
            "nodes": ["node_modules/minimist"],
            "fixAvailable": True,
        },
        "mkdirp": {
            "name": "mkdirp",
            "severity": "high",
            "isDirect": True,
            "via": ["minimist"],
            "effects": [],
            "range": "0.4.1 - 0.5.1",
            "nodes": ["node_modules/mkdirp"],
            "fixAvailable": {"name": "mkdirp", "version": "3.0.1", "isSemVerMajor": True},
        },
        "glob-parent": {
            "name": "glob-parent",
            "severity": "high",
            "isDirect": True,
            "via": [
                {
                    "source": 1097152,
                    "name": "glob-parent",
                    "dependency": "glob-parent",
                    "title": "glob-parent vulnerable to Regular Expression Denial of Service",
                    "url": "https://github.com/advisories/GHSA-ww39-953v-wcq6",
                    "severity": "high",
                    "cwe": ["CWE-400"],
                    "cvss": {
                        "score": 7.5,
                        "vectorString": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:N/I:N/A:H",
                    },
                    "range": "<5.1.2",
                }
            ],
            "effects": [],
            "range": "<5.1.2",
            "nodes": ["node_modules/glob-parent"],
            "fixAvailable": {"name": "glob-parent", "version": "6.0.2", "isSemVerMajor": True},
        },
    },
    "metadata": {
        "vulnerabilities": {
            "info": 0, "low": 0, "moderate": 0, "high": 2, "critical": 1, "total": 3,
        },
        "dependencies": {
            "prod": 4, "dev": 0, "optional": 0, "peer": 0, "peerOptional": 0, "total": 3,
        },
    },
}


@pytest.fixture
def clean_audit() -> dict[str, Any]:
    return copy.deepcopy(CLEAN_AUDIT)


@pytest.fixture
def vulnerable_audit() -> dict[str, Any]:
    return copy.deepcopy(VULNERABLE_AUDIT)


# ---------------------------------------------------------------------------
# Fake sandbox
# ---------------------------------------------------------------------------


class FakeEnvironment:
    """In-memory environment: files live in a dict."""

    def __init__(self, environment_id: str = "fake-env") -> None:
        self.environment_id = environment_id
        self.workdir = "/workspace"
        self.files: dict[str, bytes] = {}
        self.removed: list[str] = []
        self.fail_writes = False
        self.lost = False
        self.close_calls = 0
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return not self._closed and not self.lost

    @property
    def host_cwd(self) -> str | None:
        return None

    def command_argv(self, command: str, args: list[str]) -> list[str]:
        return [command, *args]

    def process_env(self) -> dict[str, str] | None:
        return None

    async def write_file(self, relative_path: str, data: bytes) -> None:
        workspace_relative(relative_path)
        if self.fail_writes:
            raise OSError("read-only file system")
        self.files[relative_path] = data

    async def remove_path(self, relative_path: str) -> None:
        workspace_relative(relative_path)
        self.removed.append(relative_path)
        self.files.pop(relative_path, None)

    def close(self) -> None:
        self.close_calls += 1
        self._closed = True


class FakeBackend:
    """Counts boots; can fail, or hold a boot open until released."""

    name = "fake"

    def __init__(self) -> None:
        self.boot_count = 0
        self.failure: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.environments: list[FakeEnvironment] = []

    async def boot(self) -> FakeEnvironment:
        self.boot_count += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.failure is not None:
            raise self.failure
        environment = FakeEnvironment(f"fake-env-{self.boot_count}")
        self.environments.append(environment)
        return environment


# ---------------------------------------------------------------------------
# Scripted process runner
# ---------------------------------------------------------------------------


@dataclass
class ScriptedProcess:
    exit_code: int = 0
    chunks: list[bytes] = field(default_factory=list)
    stderr: bytes = b""
    spawn_error: str | None = None
    gate: asyncio.Event | None = None


class ScriptedHandle(ProcessHandle):
    """Handle whose kill() stops the script and records the command line."""

    def __init__(self, runner: ScriptedRunner, line: str, emitter: asyncio.Task, *args: Any) -> None:
        super().__init__(*args)
        self._runner = runner
        self._line = line
        self._emitter = emitter

    async def kill(self) -> None:
        if self.done:
            return
        self._runner.killed.append(self._line)
        self._emitter.cancel()
        self.output.close()
        self.stderr.close()
        self._completion.set_result(-9)
        self.exit_code = -9


class ScriptedRunner:
    """Stands in for ProcessRunner.

    Scripts are matched by command-line prefix, e.g. ``"npm install"``.
    Unscripted commands exit 0 with no output.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, ScriptedProcess] = {}
        self.spawned: list[str] = []
        self.killed: list[str] = []
        self._tasks: list[asyncio.Task] = []

    def on(self, prefix: str, **kwargs: Any) -> ScriptedProcess:
        script = ScriptedProcess(**kwargs)
        self.scripts[prefix] = script
        return script

    def _match(self, line: str) -> ScriptedProcess:
        for prefix, script in self.scripts.items():
            if line.startswith(prefix):
                return script
        return ScriptedProcess()

    async def spawn(self, environment, command: str, args=()) -> ProcessHandle:
        line = " ".join([command, *args])
        if not environment.is_ready:
            raise ProcessSpawnFailed(command, "environment is not ready")
        script = self._match(line)
        if script.spawn_error is not None:
            raise ProcessSpawnFailed(command, script.spawn_error)
        self.spawned.append(line)

        output = OutputStream()
        stderr = OutputStream()
        completion: asyncio.Future[int] = asyncio.get_running_loop().create_future()

        async def _emit() -> None:
            if script.gate is not None:
                await script.gate.wait()
            for chunk in script.chunks:
                output.append(chunk)
                await asyncio.sleep(0)
            stderr.append(script.stderr)
            output.close()
            stderr.close()
            completion.set_result(script.exit_code)

        emitter = asyncio.create_task(_emit())
        self._tasks.append(emitter)
        return ScriptedHandle(self, line, emitter, command, args, output, stderr, completion)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def provisioner(backend: FakeBackend) -> EnvironmentProvisioner:
    return EnvironmentProvisioner(backend)


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def orchestrator(provisioner: EnvironmentProvisioner, runner: ScriptedRunner) -> AuditOrchestrator:
    return AuditOrchestrator(provisioner, runner=runner, config=PipelineConfig())


@pytest.fixture
def make_orchestrator() -> Callable[..., tuple[AuditOrchestrator, FakeBackend, ScriptedRunner]]:
    """Factory fixture: a fresh orchestrator wired to fakes."""

    def _factory(**config_overrides: Any) -> tuple[AuditOrchestrator, FakeBackend, ScriptedRunner]:
        fake_backend = FakeBackend()
        fake_runner = ScriptedRunner()
        orch = AuditOrchestrator(
            EnvironmentProvisioner(fake_backend),
            runner=fake_runner,
            config=PipelineConfig(**config_overrides),
        )
        return orch, fake_backend, fake_runner

    return _factory


@pytest.fixture
def fake_environment() -> FakeEnvironment:
    return FakeEnvironment()
