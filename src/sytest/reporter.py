"""Console reporting and result aggregation.

Per-unit status lines go to stdout; warnings and the final summary go to
stderr.
"""

from rich.console import Console
from rich.markup import escape

from .units import Status, TestResult, TestUnit


class ConsoleReporter:
    """Prints TEST/SKIP/PASS/FAIL/WARN markers for each unit."""

    def __init__(self, console: Console | None = None, err_console: Console | None = None):
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def skip(self, unit: TestUnit, missing: str) -> None:
        self.console.print(
            f"[bold yellow]SKIP[/] {escape(unit.name)} ({escape(unit.source)}) "
            f"due to lack of {escape(missing)}"
        )

    def start(self, unit: TestUnit) -> None:
        self.console.print(
            f"[cyan]Testing if: {escape(unit.name)} ({escape(unit.source)})[/]... ", end=""
        )

    def passed(self, unit: TestUnit) -> None:
        self.console.print("[green]PASS[/]")

    def failed(self, unit: TestUnit, error: BaseException | None) -> None:
        """Print FAIL with the error detail indented beneath it."""
        self.console.print("[bold red]FAIL[/]:")
        message = str(error).rstrip("\n") if error is not None else "unknown error"
        if not message and error is not None:
            message = type(error).__name__
        for line in message.split("\n"):
            self.console.print(f" | {escape(line)}")
        self.console.print(" +----------------------")

    def warning(self, message: str) -> None:
        self.err_console.print(f"[bold red]WARN[/]: {escape(message)}")

    def summary(self, failed: int) -> None:
        if failed:
            self.err_console.print(f"\n[bold red]{failed} tests FAILED[/]")
        else:
            self.err_console.print("\n[bold green]All tests PASSED[/]")


class ResultAggregator:
    """Tallies unit results and decides the process exit code."""

    def __init__(self) -> None:
        self.results: list[TestResult] = []

    def record(self, result: TestResult) -> None:
        self.results.append(result)

    def _count(self, status: Status) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def passed(self) -> int:
        return self._count(Status.PASS)

    @property
    def failed(self) -> int:
        return self._count(Status.FAIL)

    @property
    def skipped(self) -> int:
        return self._count(Status.SKIP)

    @property
    def executed(self) -> int:
        """Units that ran (skips excluded)."""
        return self.passed + self.failed

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def summary(self, reporter: ConsoleReporter) -> int:
        """Print the final tally and return the exit code."""
        reporter.summary(self.failed)
        return self.exit_code
