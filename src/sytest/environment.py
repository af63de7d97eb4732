"""Environment registry shared between test units.

Some units create objects as a side-effect that later units depend on, such
as clients, users and rooms. These are kept in the environment, keyed by name.
Units run one at a time so the registry needs no locking.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EnvironmentEntry:
    """A bound environment name."""

    name: str
    value: Any
    producer: str | None = None


@dataclass(frozen=True)
class MissingRequirement:
    """Outcome of require_all when a name is unbound."""

    name: str


class Environment:
    """Name to value store passed explicitly into the test runner."""

    def __init__(self) -> None:
        self._entries: dict[str, EnvironmentEntry] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def provide(self, name: str, value: Any, producer: str | None = None) -> bool:
        """Bind a name.

        A name keeps its first value for the rest of the run; rebinding it
        logs a warning and leaves the existing value in place.

        Returns:
            True if the name was bound, False if it was already bound.
        """
        existing = self._entries.get(name)
        if existing is not None:
            logger.warning(
                "Overwriting existing test environment key ignored",
                key=name,
                bound_by=existing.producer,
                attempted_by=producer,
            )
            return False

        self._entries[name] = EnvironmentEntry(name=name, value=value, producer=producer)
        logger.debug("Environment key bound", key=name, producer=producer)
        return True

    def lookup(self, name: str, default: Any = None) -> Any:
        """Return the value bound to name, or default when it is unbound.

        A name may be bound to None. Use ``name in environment`` or entry()
        to tell that apart from an unbound name.
        """
        entry = self._entries.get(name)
        return entry.value if entry is not None else default

    def entry(self, name: str) -> EnvironmentEntry | None:
        return self._entries.get(name)

    def require_all(self, names: Iterable[str]) -> list[Any] | MissingRequirement:
        """Resolve names in order.

        Returns:
            The bound values in the order asked for, or a MissingRequirement
            naming the first unbound name.
        """
        values = []
        for name in names:
            entry = self._entries.get(name)
            if entry is None:
                return MissingRequirement(name)
            values.append(entry.value)
        return values
