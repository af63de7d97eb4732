"""Logging configuration for sytest.

Two kinds of loggers feed the same root handler: stdlib loggers in the
process, client, discovery and orchestration modules, and structlog loggers
in the environment registry and the runner. Console output is human-readable.
With ``json_output`` every record, whichever kind of logger produced it, is
written as one JSON object per line (for CI log collection).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

# Log every request at INFO; -C covers that
NOISY_LOGGERS = ("httpx", "httpcore")

_RECORD_ATTRIBUTES = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


class JSONFormatter(logging.Formatter):
    """Render a record, with any structlog key/values attached to it, as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES:
                data[key] = value

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


def _build_handler(log_file: str | Path | None, json_output: bool) -> logging.Handler:
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(str(log_file))
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter("%(message)s"))
    return handler


def _structlog_processors(json_output: bool) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        # Key/values reach JSONFormatter as record attributes
        processors.append(structlog.stdlib.render_to_log_kwargs)
    else:
        processors += [
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(),
        ]
    return processors


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure logging for a run.

    Called once on startup, before any server is spawned.

    Args:
        level: Log level (debug, info, warning, error, critical)
        log_file: Write to this file instead of stderr
        json_output: Write one JSON object per record
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    handler = _build_handler(log_file, json_output)
    handler.setLevel(log_level)
    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=_structlog_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def level_for_verbosity(verbose: int, default: str = "warning") -> str:
    """Map a -v count onto a log level name."""
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return default
