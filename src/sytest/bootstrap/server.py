"""Service instance process management.

Each instance is one homeserver process listening on its own port. Readiness
is detected by watching the process output for a line matching the ready
pattern (by default Synapse's "now listening" log line).
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_STOP_TIMEOUT = 5.0
READ_CHUNK_SIZE = 64 * 1024
MAX_LINE_LENGTH = 1024 * 1024


class ServerState(Enum):
    """Lifecycle state of a service instance."""

    SPAWNED = "spawned"
    STARTING = "starting"
    READY = "ready"
    FAILED_TO_START = "failed_to_start"
    TERMINATED = "terminated"


class SynapseServer:
    """One service instance under test."""

    def __init__(
        self,
        index: int,
        port: int,
        command: list[str],
        cwd: str | None = None,
        ready_pattern: str = r"Synapse now listening on port {port}",
        print_output: bool = False,
    ):
        """Initialize a service instance.

        Args:
            index: Ordinal of this instance in the cluster
            port: Port the instance listens on
            command: argv template; ``{port}`` and ``{index}`` are substituted
            cwd: Working directory for the process
            ready_pattern: Regex template marking readiness in the output
            print_output: Log every output line of the process
        """
        self.index = index
        self.port = port
        self.command = [arg.format(port=port, index=index) for arg in command]
        self.cwd = cwd
        self.ready_pattern = re.compile(ready_pattern.format(port=port, index=index))
        self.print_output = print_output

        self.state = ServerState.SPAWNED
        self.process: asyncio.subprocess.Process | None = None
        self.started: asyncio.Future[None] | None = None
        self._watch_task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"<SynapseServer port={self.port} state={self.state.value} pid={self.pid}>"

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process else None

    async def start(self) -> tuple[asyncio.Future[None], int]:
        """Spawn the process and start watching its output.

        Returns:
            Tuple of (started future, pid). The future resolves when the
            ready line is seen and is cancelled if the process exits first.
        """
        loop = asyncio.get_running_loop()
        self.started = loop.create_future()

        logger.info(f"Starting server on port {self.port}: {' '.join(self.command)}")
        self.process = await asyncio.create_subprocess_exec(
            *self.command,
            cwd=self.cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True,
        )
        self.state = ServerState.STARTING
        self._watch_task = asyncio.create_task(self._watch_output())
        return self.started, self.process.pid

    async def _watch_output(self) -> None:
        """Read process output until EOF, resolving readiness on the way.

        Output is read in chunks and split into lines here, so a single
        oversized line cannot stop the pipe from being drained. Lines longer
        than MAX_LINE_LENGTH are truncated.
        """
        assert self.process is not None and self.process.stdout is not None
        pending = b""
        truncated = False
        while True:
            chunk = await self.process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            *lines, pending = (pending + chunk).split(b"\n")
            for raw in lines:
                if truncated:
                    # Tail of an oversized line
                    truncated = False
                    continue
                self._handle_line(raw)
            if len(pending) > MAX_LINE_LENGTH:
                if not truncated:
                    self._handle_line(pending[:MAX_LINE_LENGTH])
                    truncated = True
                pending = b""
        if pending and not truncated:
            self._handle_line(pending)

        returncode = await self.process.wait()
        logger.debug(f"Server on port {self.port} exited with code {returncode}")
        if not self.started.done():
            self.started.cancel()

    def _handle_line(self, raw: bytes) -> None:
        line = raw.decode(errors="replace").rstrip("\r")
        if self.print_output:
            logger.info(f"[{self.port}] {line}")
        if not self.started.done() and self.ready_pattern.search(line):
            self.started.set_result(None)

    def mark_ready(self) -> None:
        self.state = ServerState.READY

    def mark_failed(self) -> None:
        self.state = ServerState.FAILED_TO_START

    def terminate(self) -> bool:
        """Send SIGINT to the process.

        Returns:
            True if a signal was sent, False if there was nothing to signal.
        """
        if self.process is None or self.state == ServerState.TERMINATED:
            return False

        self.state = ServerState.TERMINATED
        if self.process.returncode is not None:
            return False

        try:
            os.kill(self.process.pid, signal.SIGINT)
        except ProcessLookupError:
            return False  # Already dead
        return True

    async def wait_closed(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        """Wait for the process to exit, force-killing it after timeout."""
        if self.process is None:
            return

        try:
            await asyncio.wait_for(self.process.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Server on port {self.port} ignored SIGINT, killing")
            try:
                self.process.kill()
            except ProcessLookupError:
                pass  # Already dead
            await self.process.wait()

        if self._watch_task is not None:
            # Children of the server may still hold the output pipe open
            _, pending = await asyncio.wait({self._watch_task}, timeout=1.0)
            for task in pending:
                task.cancel()
