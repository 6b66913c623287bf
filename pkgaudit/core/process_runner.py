"""Process runner: spawns commands inside a sandbox environment.

The runner is a transport: it launches the command, feeds its stdout and
stderr into append-only :class:`OutputStream` buffers as the bytes arrive,
and exposes the exit code once the process has terminated.  It never looks
at what the command prints.

Each command runs in its own session, so :meth:`ProcessHandle.kill` can stop
the command together with any children it started.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import AsyncIterator, Sequence

from pkgaudit.core.errors import ProcessSpawnFailed
from pkgaudit.sandbox.base import Environment

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class OutputStream:
    """Append-only, ordered buffer of byte chunks.

    Consumers may iterate it with ``async for`` while the producer is still
    appending; iteration ends once the stream is closed and drained.  With
    ``max_bytes`` set, bytes past the bound are dropped and ``truncated`` is
    set.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes
        self.truncated = False
        self._chunks: list[bytes] = []
        self._size = 0
        self._closed = False
        self._changed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size(self) -> int:
        return self._size

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def append(self, chunk: bytes) -> None:
        if self._closed:
            raise RuntimeError("OutputStream is closed")
        if not chunk:
            return
        if self.max_bytes is not None:
            remaining = self.max_bytes - self._size
            if len(chunk) > remaining:
                self.truncated = True
                chunk = chunk[:max(remaining, 0)]
                if not chunk:
                    return
        self._chunks.append(chunk)
        self._size += len(chunk)
        self._notify()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._notify()

    def snapshot(self) -> bytes:
        """All bytes received so far, in arrival order."""
        return b"".join(self._chunks)

    def _notify(self) -> None:
        # Wake every current waiter, then arm a fresh event for the next change.
        self._changed.set()
        self._changed = asyncio.Event()

    async def chunks(self) -> AsyncIterator[bytes]:
        index = 0
        while True:
            while index < len(self._chunks):
                yield self._chunks[index]
                index += 1
            if self._closed:
                return
            await self._changed.wait()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.chunks()


class ProcessHandle:
    """One spawned command: live output streams plus a completion signal.

    ``completion`` must resolve to the exit code only after both streams
    have been closed, so a caller that awaited :meth:`wait` always sees the
    complete output.
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        output: OutputStream,
        stderr: OutputStream,
        completion: asyncio.Future[int],
        *,
        process: asyncio.subprocess.Process | None = None,
    ) -> None:
        self.command = command
        self.args = tuple(args)
        self.output = output
        self.stderr = stderr
        self.pid = process.pid if process is not None else None
        self.exit_code: int | None = None
        self._completion = completion
        self._process = process

    @property
    def done(self) -> bool:
        return self._completion.done()

    async def wait(self) -> int:
        # Shielded: a cancelled waiter must not stop the pipes being drained.
        self.exit_code = await asyncio.shield(self._completion)
        return self.exit_code

    async def kill(self) -> None:
        """Kill the command and its process group, then wait for it to exit.

        Returns once the streams are closed and the process has been reaped.
        A handle that has already completed is left alone.
        """
        if self._process is None or self.done:
            return
        # The group is signalled even if the leader has exited: a child that
        # still holds the pipes open would keep the streams from closing.
        logger.warning("Killing %s (pid %s)", self.command, self.pid)
        _kill_process_group(self._process)
        self.exit_code = await asyncio.shield(self._completion)

    def __repr__(self) -> str:
        return f"ProcessHandle(command={self.command!r}, pid={self.pid}, exit_code={self.exit_code})"


async def _pump(reader: asyncio.StreamReader, stream: OutputStream, chunk_size: int) -> None:
    try:
        while True:
            chunk = await reader.read(chunk_size)
            if not chunk:
                break
            stream.append(chunk)
    finally:
        stream.close()


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        # Group already gone.
        pass


class ProcessRunner:
    """Spawns commands in an :class:`Environment` via asyncio subprocesses.

    Parameters
    ----------
    max_output_bytes:
        Bound applied to each output stream.  ``None`` means unbounded.
    chunk_size:
        Maximum bytes read from a pipe per chunk.
    """

    def __init__(
        self,
        *,
        max_output_bytes: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.max_output_bytes = max_output_bytes
        self.chunk_size = chunk_size

    async def spawn(
        self, environment: Environment, command: str, args: Sequence[str] = ()
    ) -> ProcessHandle:
        """Launch *command* with *args* inside *environment*.

        Raises ``ProcessSpawnFailed`` immediately when the environment is not
        ready or the executable cannot be started.  A non-zero exit is only
        reported through :meth:`ProcessHandle.wait`.
        """
        if not environment.is_ready:
            raise ProcessSpawnFailed(command, "environment is not ready")

        argv = environment.command_argv(command, list(args))
        logger.debug("Spawning %s in %s", argv, environment.environment_id)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=environment.host_cwd,
                env=environment.process_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise ProcessSpawnFailed(command, f"{type(exc).__name__}: {exc}") from exc

        if process.stdout is None or process.stderr is None:
            _kill_process_group(process)
            await process.wait()
            raise ProcessSpawnFailed(command, "output pipes were not opened")

        output = OutputStream(self.max_output_bytes)
        stderr = OutputStream(self.max_output_bytes)
        pumps = [
            asyncio.create_task(_pump(process.stdout, output, self.chunk_size)),
            asyncio.create_task(_pump(process.stderr, stderr, self.chunk_size)),
        ]

        async def _complete() -> int:
            await asyncio.gather(*pumps)
            code = await process.wait()
            logger.debug(
                "%s exited with %d (%d stdout bytes in %d chunks)",
                command, code, output.size, output.chunk_count,
            )
            return code

        completion = asyncio.create_task(_complete())
        return ProcessHandle(command, args, output, stderr, completion, process=process)
