"""Bootstrap package for the service cluster.

This package:
1. Spawns one service process per port
2. Races each instance's readiness against a timeout
3. Terminates every process when the orchestrator exits
"""

from .coordinator import BootstrapCoordinator
from .server import ServerState, SynapseServer

__all__ = [
    "BootstrapCoordinator",
    "ServerState",
    "SynapseServer",
]
