"""Test unit discovery.

Test files live under a directory tree and are named with leading digits that
encode their execution order (e.g. ``10login.py``, ``20rooms/10create.py``).
Entries are visited in lexicographic order at every level of the tree.
"""

import importlib.util
import logging
import re
import sys
from dataclasses import replace
from pathlib import Path

from .errors import DiscoveryError
from .units import TestUnit

logger = logging.getLogger(__name__)

DEFAULT_UNIT_PATTERN = r"^\d+.*\.py$"


def find_test_files(directory: str | Path, pattern: str = DEFAULT_UNIT_PATTERN) -> list[Path]:
    """List test files under directory in execution order.

    Args:
        directory: Root of the test tree
        pattern: Regex a file's basename must match

    Returns:
        Matching files, sorted by name at each directory level

    Raises:
        DiscoveryError: If directory does not exist
    """
    root = Path(directory)
    if not root.is_dir():
        raise DiscoveryError(f"Test directory not found: {root}", path=str(root))

    matcher = re.compile(pattern)
    found: list[Path] = []

    def walk(path: Path) -> None:
        for entry in sorted(path.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                walk(entry)
            elif matcher.match(entry.name):
                found.append(entry)

    walk(root)
    return found


def load_units(path: str | Path) -> list[TestUnit]:
    """Load the units declared by one test file.

    The file is imported as a module and must define a ``UNITS`` sequence of
    TestUnit records. Each returned unit has its ``source`` set to the file.
    """
    path = Path(path)
    module_name = "sytest_units_" + re.sub(r"\W", "_", str(path.with_suffix("")))

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise DiscoveryError(f"Cannot load test file {path}", path=str(path))

    module = importlib.util.module_from_spec(spec)
    # dataclasses look up the defining module in sys.modules
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise DiscoveryError(f"Cannot load test file {path}: {e}", path=str(path)) from e

    units = getattr(module, "UNITS", None)
    if units is None:
        raise DiscoveryError(f"Test file {path} does not define UNITS", path=str(path))

    loaded = []
    for unit in units:
        if not isinstance(unit, TestUnit):
            raise DiscoveryError(
                f"Test file {path} declares a {type(unit).__name__}, expected TestUnit",
                path=str(path),
            )
        loaded.append(replace(unit, source=str(path)))
    return loaded


def discover_units(directory: str | Path, pattern: str = DEFAULT_UNIT_PATTERN) -> list[TestUnit]:
    """Load every unit under directory, in execution order."""
    units: list[TestUnit] = []
    for path in find_test_files(directory, pattern):
        file_units = load_units(path)
        logger.debug(f"Loaded {len(file_units)} units from {path}")
        units.extend(file_units)
    return units
