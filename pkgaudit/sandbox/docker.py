"""Container sandbox: one long-lived Docker container per process.

The container idles on ``sleep infinity``; every pipeline command is a
``docker exec`` into it, so the process runner sees an ordinary host
process whose stdout is the command's stdout.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import shlex
import shutil
import subprocess
import uuid

from pkgaudit.core.errors import EnvironmentBootFailed
from pkgaudit.sandbox.base import workspace_relative

logger = logging.getLogger(__name__)

CONTAINER_WORKDIR = "/workspace"


async def _run(argv: list[str], stdin: bytes | None = None) -> tuple[int, bytes, bytes]:
    """Run a docker CLI call to completion and return (code, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate(stdin)
    return proc.returncode, stdout, stderr


class DockerEnvironment:
    """A running sandbox container."""

    def __init__(self, container: str, *, docker_command: str = "docker") -> None:
        self.container = container
        self.docker_command = docker_command
        self.environment_id = f"docker-{container[:12]}"
        self.workdir = CONTAINER_WORKDIR
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return not self._closed

    @property
    def host_cwd(self) -> str | None:
        return None

    def command_argv(self, command: str, args: list[str]) -> list[str]:
        return [
            self.docker_command, "exec", "-w", self.workdir,
            self.container, command, *args,
        ]

    def process_env(self) -> dict[str, str] | None:
        return None

    def _container_path(self, relative_path: str) -> str:
        return f"{self.workdir}/{workspace_relative(relative_path)}"

    async def write_file(self, relative_path: str, data: bytes) -> None:
        target = shlex.quote(self._container_path(relative_path))
        script = f'mkdir -p "$(dirname {target})" && cat > {target}'
        code, _, stderr = await _run(
            [self.docker_command, "exec", "-i", self.container, "sh", "-c", script],
            stdin=data,
        )
        if code != 0:
            raise OSError(f"docker exec write failed (exit {code}): {stderr.decode(errors='replace').strip()}")

    async def remove_path(self, relative_path: str) -> None:
        target = self._container_path(relative_path)
        code, _, stderr = await _run(
            [self.docker_command, "exec", self.container, "rm", "-rf", target]
        )
        if code != 0:
            raise OSError(f"docker exec rm failed (exit {code}): {stderr.decode(errors='replace').strip()}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        subprocess.run(
            [self.docker_command, "rm", "-f", self.container],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        logger.debug("Removed sandbox container %s", self.container)


class DockerSandboxBackend:
    """Boots :class:`DockerEnvironment` instances from a Node.js image."""

    name = "docker"

    def __init__(
        self,
        image: str = "node:20-slim",
        *,
        docker_command: str = "docker",
        npm_command: str = "npm",
        keep_sandbox: bool = False,
    ) -> None:
        self.image = image
        self.docker_command = docker_command
        self.npm_command = npm_command
        self.keep_sandbox = keep_sandbox

    def run_argv(self, name: str) -> list[str]:
        argv = [self.docker_command, "run", "-d"]
        if not self.keep_sandbox:
            argv.append("--rm")
        argv += ["--name", name, "-w", CONTAINER_WORKDIR, self.image, "sleep", "infinity"]
        return argv

    async def boot(self) -> DockerEnvironment:
        if shutil.which(self.docker_command) is None:
            raise EnvironmentBootFailed(f"{self.docker_command!r} not found on PATH")

        name = f"pkgaudit-{uuid.uuid4().hex[:12]}"
        code, stdout, stderr = await _run(self.run_argv(name))
        if code != 0:
            raise EnvironmentBootFailed(
                f"docker run {self.image} failed (exit {code}): "
                f"{stderr.decode(errors='replace').strip()}"
            )
        environment = DockerEnvironment(
            stdout.decode().strip() or name, docker_command=self.docker_command
        )

        probe = environment.command_argv(self.npm_command, ["--version"])
        code, stdout, stderr = await _run(probe)
        if code != 0:
            environment.close()
            raise EnvironmentBootFailed(
                f"{self.npm_command!r} unavailable in image {self.image} (exit {code})"
            )

        if not self.keep_sandbox:
            atexit.register(environment.close)
        logger.info(
            "Docker sandbox %s ready (image %s, npm %s)",
            environment.environment_id,
            self.image,
            stdout.decode().strip(),
        )
        return environment
