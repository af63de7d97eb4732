"""Test unit and result records.

A test unit is a plain record: which environment names it needs, which it
promises to provide, an optional convergence check and an optional one-shot
action. Test files expose their units through a module-level ``UNITS`` list:

    from sytest import TestUnit

    async def create_room(clients):
        room = await clients[0].create_room()
        return {"room": room}

    UNITS = [
        TestUnit(
            name="A room can be created",
            requires=["clients"],
            provides=["room"],
            do=create_room,
        ),
    ]
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

UnitCallable = Callable[..., Any]


class Status(Enum):
    """Outcome of running one test unit."""

    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"


@dataclass
class TestUnit:
    """
    Represents one test unit.

    Attributes:
        name: Human-readable name
        requires: Environment names that must be bound before this unit runs
        provides: Environment names this unit promises to bind
        check: Predicate asserting the unit's goal state (optional)
        do: One-shot action producing the goal state (optional)
        wait_time: Extra check attempts allowed while the system converges
        source: File the unit was loaded from
    """

    __test__ = False

    name: str
    requires: Sequence[str] = field(default_factory=list)
    provides: Sequence[str] = field(default_factory=list)
    check: UnitCallable | None = None
    do: UnitCallable | None = None
    wait_time: int = 0
    source: str = ""

    def __post_init__(self):
        """Validate unit definition."""
        if not self.name:
            raise ValueError("Test unit name is required")
        if isinstance(self.requires, str) or isinstance(self.provides, str):
            raise ValueError("requires and provides must be lists of names")
        self.requires = list(self.requires)
        self.provides = list(self.provides)
        if not isinstance(self.wait_time, int) or self.wait_time < 0:
            raise ValueError(f"wait_time must be a non-negative integer, got {self.wait_time!r}")
        for attr in ("check", "do"):
            value = getattr(self, attr)
            if value is not None and not callable(value):
                raise ValueError(f"{attr} must be callable, got {type(value).__name__}")

    @property
    def max_attempts(self) -> int:
        """Number of times the convergence check may run."""
        return 1 + self.wait_time


@dataclass
class TestResult:
    """Result of running a single test unit."""

    __test__ = False

    unit: TestUnit
    status: Status
    error: BaseException | None = None
    missing: str | None = None
    attempts: int = 0

    @property
    def passed(self) -> bool:
        return self.status == Status.PASS

    @property
    def failed(self) -> bool:
        return self.status == Status.FAIL

    @property
    def skipped(self) -> bool:
        return self.status == Status.SKIP
