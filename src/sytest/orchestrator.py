"""Orchestrator - wires bootstrap, clients, environment and runner together."""

from __future__ import annotations

import logging

from .bootstrap import BootstrapCoordinator
from .client import MatrixClient, close_clients, connect_clients
from .config import SytestConfig
from .discovery import discover_units
from .environment import Environment
from .reporter import ConsoleReporter, ResultAggregator
from .runner import TestRunner
from .units import TestUnit

logger = logging.getLogger(__name__)

CLIENTS_KEY = "clients"


class Orchestrator:
    """
    Runs one full integration test pass.

    Phases:
    1. Discover test units (fatal on a broken test file)
    2. Bootstrap every service instance (fatal if any fails to start)
    3. Open one client session per instance and bind them as ``clients``
    4. Run every unit in order against the shared environment
    5. Tear down clients and instances
    """

    def __init__(
        self,
        config: SytestConfig,
        coordinator: BootstrapCoordinator | None = None,
        reporter: ConsoleReporter | None = None,
        units: list[TestUnit] | None = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Loaded configuration
            coordinator: Bootstrap coordinator (built from config if omitted)
            reporter: Console reporter (stdout/stderr if omitted)
            units: Units to run instead of discovering them from tests_dir
        """
        self.config = config
        self.coordinator = coordinator or BootstrapCoordinator.from_config(config)
        self.reporter = reporter or ConsoleReporter()
        self._units = units

        self.environment = Environment()
        self.aggregator = ResultAggregator()
        self.clients: list[MatrixClient] = []

    def load_units(self) -> list[TestUnit]:
        if self._units is not None:
            return list(self._units)
        return discover_units(self.config.tests_dir, self.config.unit_pattern)

    async def run(self) -> int:
        """Run every phase and return the process exit code.

        Raises:
            DiscoveryError: If a test file cannot be loaded
            BootstrapError: If any service instance fails to start
        """
        units = self.load_units()
        logger.info(f"Discovered {len(units)} test units")

        try:
            servers = await self.coordinator.start_all()
            self.clients = await connect_clients(servers, self.config)
            try:
                self.environment.provide(CLIENTS_KEY, self.clients, producer="bootstrap")
                runner = TestRunner(
                    self.environment,
                    self.reporter,
                    retry_interval=self.config.retry_interval,
                )
                await runner.run_all(units, self.aggregator)
            finally:
                await close_clients(self.clients)
        finally:
            await self.coordinator.stop()

        return self.aggregator.summary(self.reporter)
