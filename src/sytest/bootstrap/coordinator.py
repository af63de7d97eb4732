"""Bootstrap coordination for the service cluster.

Starts every instance concurrently and races each one's readiness against a
fixed timeout. Bootstrap succeeds only if every instance becomes ready; any
failure is fatal to the whole run.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import signal
import sys
from typing import TYPE_CHECKING

from ..errors import BootstrapError, ServerStartError, ServerStartTimeout
from .server import ServerState, SynapseServer

if TYPE_CHECKING:
    from ..config import SytestConfig

logger = logging.getLogger(__name__)

DEFAULT_STARTUP_TIMEOUT = 10.0


class BootstrapCoordinator:
    """Owns the service instances and the authority to terminate them."""

    def __init__(
        self,
        ports: list[int],
        command: list[str],
        cwd: str | None = None,
        ready_pattern: str = r"Synapse now listening on port {port}",
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        print_output: bool = False,
    ):
        """Initialize the coordinator.

        Args:
            ports: One port per instance, in instance order
            command: argv template for each instance
            cwd: Working directory for the instance processes
            ready_pattern: Regex template marking readiness in process output
            startup_timeout: Seconds each instance has to become ready
            print_output: Log instance output lines
        """
        self.startup_timeout = startup_timeout
        self.servers = [
            SynapseServer(
                index=i,
                port=port,
                command=command,
                cwd=cwd,
                ready_pattern=ready_pattern,
                print_output=print_output,
            )
            for i, port in enumerate(ports)
        ]
        self._hook_installed = False

    @classmethod
    def from_config(cls, config: SytestConfig) -> BootstrapCoordinator:
        return cls(
            ports=config.ports,
            command=config.server_command,
            cwd=config.server_dir,
            ready_pattern=config.ready_pattern,
            startup_timeout=config.startup_timeout,
            print_output=bool(config.server_log),
        )

    @property
    def ready_servers(self) -> list[SynapseServer]:
        return [s for s in self.servers if s.state == ServerState.READY]

    async def _race(self, server: SynapseServer) -> SynapseServer:
        """Wait for readiness or the timeout, whichever comes first."""
        try:
            started, pid = await server.start()
        except OSError as e:
            server.mark_failed()
            raise ServerStartError(
                f"Service on port {server.port} could not be spawned: {e}", port=server.port
            ) from e

        logger.debug(f"Spawned server on port {server.port} (pid {pid})")

        # The losing side is left alone; a pending timer has no side effects
        timer = asyncio.ensure_future(asyncio.sleep(self.startup_timeout))
        done, _ = await asyncio.wait({started, timer}, return_when=asyncio.FIRST_COMPLETED)

        if started in done:
            if started.cancelled():
                server.mark_failed()
                raise ServerStartError(
                    f"Service on port {server.port} exited with code "
                    f"{server.returncode} before signalling readiness",
                    port=server.port,
                    returncode=server.returncode,
                )
            server.mark_ready()
            logger.info(f"Server on port {server.port} is ready")
            return server

        server.mark_failed()
        raise ServerStartTimeout(port=server.port)

    async def start_all(self) -> list[SynapseServer]:
        """Start every instance and wait until all have resolved.

        Returns:
            All instances, in order, each READY.

        Raises:
            BootstrapError: If any instance failed to start.
        """
        outcomes = await asyncio.gather(
            *(self._race(server) for server in self.servers),
            return_exceptions=True,
        )

        failures: list[ServerStartError] = []
        for outcome in outcomes:
            if isinstance(outcome, ServerStartError):
                failures.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome

        if failures:
            raise BootstrapError.from_failures(failures)
        return list(self.servers)

    def terminate_all(self) -> list[int]:
        """Send SIGINT to every spawned instance.

        Safe to call more than once and before bootstrap has finished.

        Returns:
            PIDs that were signalled.
        """
        targets = [
            s for s in self.servers if s.process is not None and s.state != ServerState.TERMINATED
        ]
        if not targets:
            return []

        print("Killing synapse servers...", file=sys.stderr)
        signalled = []
        for server in targets:
            pid = server.pid
            if server.terminate() and pid is not None:
                print(f"[{pid}] ", end="", file=sys.stderr)
                signalled.append(pid)
        print(file=sys.stderr)
        return signalled

    async def stop(self) -> None:
        """Terminate every instance and wait for the processes to exit."""
        self.terminate_all()
        await asyncio.gather(*(s.wait_closed() for s in self.servers))

    def install_shutdown_hook(self) -> None:
        """Terminate all instances at process exit, including on SIGINT."""
        if self._hook_installed:
            return

        def handle_sigint(signum: int, frame: object) -> None:
            sys.exit(1)

        atexit.register(self.terminate_all)
        signal.signal(signal.SIGINT, handle_sigint)
        self._hook_installed = True
