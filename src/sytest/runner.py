"""Test execution engine.

Runs test units strictly one after another. Each unit goes through:

1. Resolve its requirements from the environment (missing -> SKIP)
2. Preflight: if it has both check and do, warn when check already passes
3. Act: run ``do`` once (an error -> FAIL)
4. Converge: run ``check`` up to ``1 + wait_time`` times, sleeping
   ``retry_interval`` between attempts (never true -> FAIL)
5. Audit: warn about promised environment names that are still unbound

The convergence loop exists because units assert the eventual state of a live
system (e.g. an event reaching another server); a single check straight after
the action would race the propagation.
"""

import asyncio
import inspect
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .environment import Environment, MissingRequirement
from .errors import CheckFailed
from .shared.logging import get_logger
from .units import Status, TestResult, TestUnit

if TYPE_CHECKING:
    from .reporter import ConsoleReporter, ResultAggregator

logger = get_logger(__name__)

DEFAULT_RETRY_INTERVAL = 1.0


@dataclass
class CheckAttempt:
    """Outcome of one invocation of a check.

    ``converged`` is False both when the check returned a false value and when
    it raised; ``error`` tells the two apart.
    """

    converged: bool
    error: BaseException | None = None

    @property
    def broken(self) -> bool:
        return self.error is not None and not isinstance(self.error, CheckFailed)


async def _invoke(func: Any, args: list[Any]) -> Any:
    """Call a unit callable, awaiting its result if it is awaitable."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class TestRunner:
    """Executes test units against a shared environment."""

    __test__ = False

    def __init__(
        self,
        environment: Environment,
        reporter: "ConsoleReporter",
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ):
        """Initialize the runner.

        Args:
            environment: Registry units read requirements from and provide into
            reporter: Receives per-unit status lines and warnings
            retry_interval: Seconds to wait between convergence check attempts
        """
        self.environment = environment
        self.reporter = reporter
        self.retry_interval = retry_interval

    async def attempt_check(self, unit: TestUnit, args: list[Any]) -> CheckAttempt:
        """Invoke the unit's check once."""
        try:
            if await _invoke(unit.check, args):
                return CheckAttempt(converged=True)
            return CheckAttempt(converged=False, error=CheckFailed())
        except Exception as e:
            return CheckAttempt(converged=False, error=e)

    async def _preflight(self, unit: TestUnit, args: list[Any]) -> None:
        attempt = await self.attempt_check(unit, args)
        if attempt.converged:
            self.reporter.warning(f"{unit.name} was already passing before we did anything")
        elif attempt.broken:
            logger.debug("Preflight check raised", unit=unit.name, error=str(attempt.error))

    async def _act(self, unit: TestUnit, args: list[Any]) -> None:
        provided = await _invoke(unit.do, args)
        if not isinstance(provided, Mapping):
            if provided is not None:
                logger.debug("Ignoring non-mapping action result", unit=unit.name)
            return
        for name, value in provided.items():
            self.environment.provide(name, value, producer=unit.name)

    async def _converge(self, unit: TestUnit, args: list[Any]) -> tuple[CheckAttempt, int]:
        attempt = CheckAttempt(converged=False)
        for number in range(1, unit.max_attempts + 1):
            attempt = await self.attempt_check(unit, args)
            if attempt.converged:
                return attempt, number

            logger.debug(
                "Check not yet converged",
                unit=unit.name,
                attempt=number,
                max_attempts=unit.max_attempts,
                error=str(attempt.error),
            )
            # No sleep after the final attempt
            if number < unit.max_attempts:
                await asyncio.sleep(self.retry_interval)

        return attempt, unit.max_attempts

    def _audit(self, unit: TestUnit) -> None:
        for name in unit.provides:
            if name not in self.environment:
                self.reporter.warning(
                    f"Test failed to provide the '{name}' environment as promised"
                )

    async def run_unit(self, unit: TestUnit) -> TestResult:
        """Execute one unit and return exactly one result."""
        args = self.environment.require_all(unit.requires)
        if isinstance(args, MissingRequirement):
            self.reporter.skip(unit, args.name)
            return TestResult(unit=unit, status=Status.SKIP, missing=args.name)

        self.reporter.start(unit)
        result = await self._execute(unit, args)

        if result.passed:
            self.reporter.passed(unit)
        else:
            self.reporter.failed(unit, result.error)

        self._audit(unit)
        return result

    async def _execute(self, unit: TestUnit, args: list[Any]) -> TestResult:
        if unit.do is not None:
            if unit.check is not None:
                await self._preflight(unit, args)
            try:
                await self._act(unit, args)
            except Exception as e:
                logger.debug("Action raised", unit=unit.name, error=str(e))
                return TestResult(unit=unit, status=Status.FAIL, error=e)

        if unit.check is None:
            return TestResult(unit=unit, status=Status.PASS)

        attempt, attempts = await self._converge(unit, args)
        if attempt.converged:
            return TestResult(unit=unit, status=Status.PASS, attempts=attempts)
        return TestResult(unit=unit, status=Status.FAIL, error=attempt.error, attempts=attempts)

    async def run_all(
        self, units: Iterable[TestUnit], aggregator: "ResultAggregator"
    ) -> "ResultAggregator":
        """Run units in order, recording every result."""
        for unit in units:
            aggregator.record(await self.run_unit(unit))
        return aggregator
