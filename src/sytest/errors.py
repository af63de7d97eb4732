"""Error taxonomy for the orchestrator.

Fatal errors (configuration, discovery, bootstrap) abort the run before any
test unit executes. Unit-local errors are caught by the runner and turned
into FAIL results.
"""

from dataclasses import dataclass, field
from typing import Any

CHECK_FAILED_MESSAGE = "Test check function failed to return a true value"


@dataclass
class SytestError(Exception):
    """Base error class for orchestrator errors."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class ConfigError(SytestError):
    """Configuration could not be loaded."""

    path: str | None = None


@dataclass
class DiscoveryError(SytestError):
    """A test file could not be loaded."""

    path: str | None = None


@dataclass
class ServerStartError(SytestError):
    """A service instance exited before signalling readiness."""

    port: int = 0
    returncode: int | None = None


@dataclass
class ServerStartTimeout(ServerStartError):
    """A service instance did not signal readiness in time."""

    message: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Service on port {self.port} failed to start within the timeout"


@dataclass
class BootstrapError(SytestError):
    """One or more service instances failed to start."""

    failures: list[ServerStartError] = field(default_factory=list)

    @classmethod
    def from_failures(cls, failures: list[ServerStartError]) -> "BootstrapError":
        """Build an aggregate error naming every failed instance."""
        lines = [f.message for f in failures]
        return cls(message="\n".join(lines), failures=list(failures))


@dataclass
class ClientError(SytestError):
    """A client request failed."""

    status_code: int | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckFailed(SytestError):
    """A convergence check returned a false value."""

    message: str = CHECK_FAILED_MESSAGE
