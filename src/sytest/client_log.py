"""Request/response diagnostics for client sessions.

``RequestLogger`` is installed as httpx event hooks when a session is built
(``-C/--client-log``). ``report_request_failure`` is the default error hook
every session runs before raising a failed request.
"""

import json
from collections.abc import Callable
from typing import Any

import click
import httpx

Echo = Callable[[str], None]


def _echo_err(message: str) -> None:
    click.echo(message, err=True)


def _indent(text: str) -> str:
    return "\n".join(f"  {line}" for line in text.split("\n"))


def format_request(request: httpx.Request) -> str:
    lines = [f"{request.method} {request.url}"]
    lines.extend(f"{name}: {value}" for name, value in request.headers.items())
    body = request.content.decode(errors="replace") if request.content else ""
    if body:
        lines.extend(["", body])
    return "\n".join(lines)


def format_response(response: httpx.Response) -> str:
    lines = [f"{response.http_version} {response.status_code} {response.reason_phrase}"]
    lines.extend(f"{name}: {value}" for name, value in response.headers.items())
    if response.content:
        lines.extend(["", response.text])
    return "\n".join(lines)


class RequestLogger:
    """Prints outgoing requests, their responses and incoming events."""

    def __init__(self, echo: Echo | None = None, skip_suffixes: tuple[str, ...] = ("/events",)):
        self.echo = echo or _echo_err
        self.skip_suffixes = skip_suffixes

    def _skipped(self, request: httpx.Request) -> bool:
        return request.url.path.endswith(self.skip_suffixes)

    async def on_request(self, request: httpx.Request) -> None:
        if self._skipped(request):
            return
        self.echo(click.style("Requesting", fg="green", bold=True) + ":")
        self.echo(_indent(format_request(request)))
        self.echo("-- ")

    async def on_response(self, response: httpx.Response) -> None:
        if self._skipped(response.request):
            return
        await response.aread()
        title = click.style("Response", fg="yellow", bold=True)
        self.echo(f"{title} from {response.request.url}:")
        self.echo(_indent(format_response(response)))
        self.echo("-- ")

    def on_event(self, server: str, event: dict[str, Any]) -> None:
        self.echo(click.style("Received event", fg="yellow", bold=True) + f" from {server}:")
        self.echo(_indent(json.dumps(event, indent=2, sort_keys=True, default=str)))
        self.echo("-- ")

    def event_hooks(self) -> dict[str, list[Callable[..., Any]]]:
        """Hooks for ``httpx.AsyncClient(event_hooks=...)``."""
        return {"request": [self.on_request], "response": [self.on_response]}


def report_request_failure(
    session: Any, failure: Exception, context: dict[str, Any], echo: Echo | None = None
) -> None:
    """Print the request and response behind a failure.

    Only observes; the session raises the failure afterwards.
    """
    echo = echo or _echo_err
    request: httpx.Request | None = context.get("request")
    response: httpx.Response | None = context.get("response")

    if request is not None:
        echo(f"Received from {request.url}")
    if response is not None:
        echo(_indent(format_response(response)))
    else:
        echo("No response")
