"""sytest - integration test orchestrator for a cluster of homeservers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sytest")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .environment import Environment, MissingRequirement
from .main import main
from .units import Status, TestResult, TestUnit

__all__ = [
    "main",
    "__version__",
    "Environment",
    "MissingRequirement",
    "Status",
    "TestResult",
    "TestUnit",
]
