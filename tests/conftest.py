"""Shared test fixtures for sytest tests.

This module provides fixtures for testing the orchestrator:
- FakeHomeserver: Simulates the client-server API of one service instance
- server_command: argv templates for short-lived stand-in server processes
- RecordingReporter: ConsoleReporter writing into an in-memory buffer
"""

import io
import json
import sys
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
from rich.console import Console

from sytest.client import MatrixClient
from sytest.config import SytestConfig
from sytest.reporter import ConsoleReporter

# =============================================================================
# Fake homeserver - Simulates the client-server API over httpx.MockTransport
# =============================================================================


@dataclass
class FakeHomeserverState:
    """State shared by the fake homeservers of one test."""

    # Request tracking
    requests: list[tuple[int, str, str]] = field(default_factory=list)

    # Rooms by id, with the port they were created on
    rooms: dict[str, dict[str, Any]] = field(default_factory=dict)

    # Messages sent, with their room, event type and transaction id
    messages: list[dict[str, Any]] = field(default_factory=list)

    # Number of state polls on a non-origin server before a room shows up
    propagation_polls: int = 0

    # Force error responses for paths containing this fragment
    fail_path: str | None = None
    fail_status: int = 500

    _polls: dict[tuple[int, str], int] = field(default_factory=dict)


class FakeHomeserver:
    """One fake service instance.

    Provides:
    - POST /register, /login
    - POST /createRoom
    - POST /join/{room}
    - PUT /rooms/{room_id}/send/{type}/{txn}
    - GET /rooms/{room_id}/state
    - GET /events
    """

    def __init__(self, port: int, state: FakeHomeserverState):
        self.port = port
        self.state = state

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/_matrix/client/r0")
        self.state.requests.append((self.port, request.method, path))

        if self.state.fail_path and self.state.fail_path in path:
            return httpx.Response(
                self.state.fail_status, json={"errcode": "M_UNKNOWN", "error": "Forced failure"}
            )

        body = json.loads(request.content) if request.content else {}

        if path in ("/register", "/login"):
            user = body.get("username") or body.get("user")
            return httpx.Response(
                200, json={"user_id": f"@{user}:localhost:{self.port}", "access_token": "tok"}
            )

        if path == "/createRoom":
            room_id = f"!room{len(self.state.rooms) + 1}:localhost:{self.port}"
            self.state.rooms[room_id] = {"origin": self.port, "alias": body.get("room_alias_name")}
            return httpx.Response(200, json={"room_id": room_id})

        if path.startswith("/join/"):
            room_id = path.removeprefix("/join/")
            if room_id not in self.state.rooms:
                return httpx.Response(404, json={"errcode": "M_NOT_FOUND", "error": "No room"})
            return httpx.Response(200, json={"room_id": room_id})

        if path.startswith("/rooms/") and "/send/" in path:
            room_id, _, tail = path.removeprefix("/rooms/").partition("/send/")
            event_type, _, txn_id = tail.partition("/")
            self.state.messages.append(
                {"room_id": room_id, "type": event_type, "txn_id": txn_id, "content": body}
            )
            return httpx.Response(200, json={"event_id": f"$event{len(self.state.messages)}"})

        if path.startswith("/rooms/") and path.endswith("/state"):
            room_id = path.removeprefix("/rooms/").removesuffix("/state")
            room = self.state.rooms.get(room_id)
            if room is None:
                return httpx.Response(200, json=[])
            if room["origin"] != self.port:
                key = (self.port, room_id)
                self.state._polls[key] = self.state._polls.get(key, 0) + 1
                if self.state._polls[key] <= self.state.propagation_polls:
                    return httpx.Response(200, json=[])
            return httpx.Response(
                200, json=[{"type": "m.room.create", "room_id": room_id, "content": {}}]
            )

        if path == "/events":
            return httpx.Response(
                200,
                json={"chunk": [{"type": "m.presence", "content": {}}], "start": "s0", "end": "s1"},
            )

        return httpx.Response(404, json={"errcode": "M_UNRECOGNIZED", "error": "Unrecognized"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def homeserver_state() -> FakeHomeserverState:
    """Fixture providing fake homeserver state for configuration."""
    return FakeHomeserverState()


@pytest.fixture
def make_client(homeserver_state: FakeHomeserverState):
    """Fixture building opened MatrixClients backed by a FakeHomeserver."""

    async def _make(port: int = 8001, **kwargs: Any) -> MatrixClient:
        fake = FakeHomeserver(port, homeserver_state)
        client = MatrixClient("localhost", port, transport=fake.transport(), **kwargs)
        return await client.open()

    return _make


# =============================================================================
# Stand-in server processes
# =============================================================================

READY_SCRIPT = (
    "import time; print('Synapse now listening on port {port}', flush=True); time.sleep(60)"
)
SILENT_SCRIPT = "import time; time.sleep(60)"
EXIT_SCRIPT = "import sys; print('config error on port {port}', flush=True); sys.exit(3)"


@pytest.fixture
def server_command():
    """Fixture returning argv templates for fake servers.

    Usage: server_command("ready"), server_command("silent"), server_command("exit"),
    or server_command(script=...) for a custom script.
    """
    scripts = {"ready": READY_SCRIPT, "silent": SILENT_SCRIPT, "exit": EXIT_SCRIPT}

    def _command(kind: str = "ready", script: str | None = None) -> list[str]:
        return [sys.executable, "-c", script or scripts[kind]]

    return _command


@pytest.fixture
def config(server_command, tmp_path) -> SytestConfig:
    """Configuration for a fast two-server run against fake servers."""
    return SytestConfig(
        number=2,
        base_port=9001,
        server_dir=str(tmp_path),
        server_command=server_command("ready"),
        startup_timeout=5.0,
        retry_interval=0.01,
        tests_dir=str(tmp_path / "tests"),
    )


# =============================================================================
# Reporter
# =============================================================================


class RecordingReporter(ConsoleReporter):
    """ConsoleReporter writing plain text into buffers."""

    def __init__(self) -> None:
        self.out = io.StringIO()
        self.err = io.StringIO()
        options = {"no_color": True, "width": 200, "highlight": False, "soft_wrap": True}
        super().__init__(
            console=Console(file=self.out, **options),
            err_console=Console(file=self.err, **options),
        )

    @property
    def output(self) -> str:
        return self.out.getvalue()

    @property
    def errors(self) -> str:
        return self.err.getvalue()


@pytest.fixture
def reporter() -> RecordingReporter:
    """Fixture providing a reporter that records its output."""
    return RecordingReporter()
