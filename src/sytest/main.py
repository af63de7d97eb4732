"""CLI main entry point."""

import asyncio
import sys

import click

__version__ = "0.1.0"  # Defined here to avoid circular import

from .bootstrap import BootstrapCoordinator
from .config import load_config
from .errors import BootstrapError, ConfigError, SytestError
from .orchestrator import Orchestrator
from .shared.logging import configure_logging, level_for_verbosity


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-N", "--number", type=int, default=None, help="Number of servers to start (default: 2)"
)
@click.option("-C", "--client-log", count=True, help="Log client requests, responses and events")
@click.option("-S", "--server-log", count=True, help="Log server process output")
@click.option("-c", "--config", "config_path", type=click.Path(), help="Config file path")
@click.option(
    "--base-port", type=int, default=None, help="Port of the first server (default: 8001)"
)
@click.option("--server-dir", type=click.Path(), default=None, help="Working directory for servers")
@click.option("--tests-dir", type=click.Path(), default=None, help="Directory of test files")
@click.option(
    "--startup-timeout", type=float, default=None, help="Seconds each server has to start"
)
@click.option("--log-file", type=click.Path(), default=None, help="Write logs to this file")
@click.option("--json-logs", is_flag=True, help="Write logs as JSON lines")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.version_option(__version__, prog_name="sytest")
def cli(
    number: int | None,
    client_log: int,
    server_log: int,
    config_path: str | None,
    base_port: int | None,
    server_dir: str | None,
    tests_dir: str | None,
    startup_timeout: float | None,
    log_file: str | None,
    json_logs: bool,
    verbose: int,
) -> int:
    """Start a cluster of homeservers and run the integration tests against it."""
    overrides = {
        "number": number,
        "client_log": client_log or None,
        "server_log": server_log or None,
        "base_port": base_port,
        "server_dir": server_dir,
        "tests_dir": tests_dir,
        "startup_timeout": startup_timeout,
        "log_file": log_file,
        "json_logs": json_logs or None,
    }
    try:
        config = load_config(config_path, overrides)
    except ConfigError as e:
        click.echo(f"Error: {e.message}", err=True)
        return 1

    level = level_for_verbosity(verbose, default=config.log_level)
    if config.server_log and level != "debug":
        level = "info"
    configure_logging(level, log_file=config.log_file, json_output=config.json_logs)

    coordinator = BootstrapCoordinator.from_config(config)
    coordinator.install_shutdown_hook()
    orchestrator = Orchestrator(config, coordinator=coordinator)

    try:
        return asyncio.run(orchestrator.run())
    except BootstrapError as e:
        click.echo(f"Bootstrap failed:\n{e.message}", err=True)
        return 1
    except SytestError as e:
        click.echo(f"Error: {e.message}", err=True)
        return 1


def main(args: list[str] | None = None) -> None:
    """Console script entry point; any option parsing error exits with 1."""
    try:
        rv = cli.main(args=args, prog_name="sytest", standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    sys.exit(rv or 0)


if __name__ == "__main__":
    main()
