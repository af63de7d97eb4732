"""Client sessions for the service instances.

One session is opened per ready instance and the ordered list is bound into
the environment as ``clients``. Sessions speak the Matrix client-server API
over HTTPS (certificate checks off by default, the test servers use
self-signed certificates).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from .client_log import RequestLogger, report_request_failure
from .errors import ClientError

if TYPE_CHECKING:
    from .bootstrap import SynapseServer
    from .config import SytestConfig

logger = logging.getLogger(__name__)

CLIENT_PREFIX = "/_matrix/client/r0"

ErrorHook = Callable[["MatrixClient", Exception, dict[str, Any]], None]


class MatrixClient:
    """HTTP session bound to one service instance."""

    def __init__(
        self,
        server: str,
        port: int,
        tls: bool = True,
        verify: bool = False,
        timeout: float = 30.0,
        on_error: ErrorHook | None = None,
        request_logger: RequestLogger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            server: Hostname of the instance
            port: Port of the instance
            tls: Use https
            verify: Verify the server certificate
            timeout: Request timeout in seconds
            on_error: Called as on_error(session, failure, context) before a
                failed request is raised; context holds request and response
            request_logger: Optional request/response/event diagnostics
            transport: Custom httpx transport
        """
        self.server = server
        self.port = port
        scheme = "https" if tls else "http"
        self.base_url = f"{scheme}://{server}:{port}"
        self.verify = verify
        self.timeout = timeout
        self.on_error = on_error
        self.request_logger = request_logger
        self.transport = transport

        self.user_id: str | None = None
        self.access_token: str | None = None
        self._client: httpx.AsyncClient | None = None

    def __repr__(self) -> str:
        return f"<MatrixClient {self.base_url} user={self.user_id}>"

    async def open(self) -> MatrixClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                verify=self.verify,
                event_hooks=self.request_logger.event_hooks() if self.request_logger else None,
                transport=self.transport,
            )
        return self

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> MatrixClient:
        """Enter async context."""
        return await self.open()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context."""
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise ClientError("Client not opened. Use 'async with' or open().")
        return self._client

    def _fail(self, failure: Exception, context: dict[str, Any]) -> None:
        if self.on_error is not None:
            self.on_error(self, failure, context)

    async def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an HTTP request to the instance.

        Args:
            method: HTTP method
            path: API path, relative to the client API prefix
            json: JSON body
            params: Query parameters

        Returns:
            Response JSON as dict

        Raises:
            ClientError: On connection or HTTP errors, after on_error ran
        """
        client = self._ensure_client()
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        try:
            response = await client.request(
                method, CLIENT_PREFIX + path, json=json, params=params, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._fail(e, {"request": e.request, "response": e.response})
            try:
                error_data = e.response.json()
            except ValueError:
                error_data = None
            message = str(e)
            if isinstance(error_data, dict):
                message = str(error_data.get("error", message))
            raise ClientError(
                message, status_code=e.response.status_code, data={"url": str(e.request.url)}
            ) from e
        except httpx.TransportError as e:
            try:
                request = e.request
            except RuntimeError:
                request = None
            self._fail(e, {"request": request, "response": None})
            raise ClientError(f"Cannot reach server at {self.base_url}: {e}") from e

        if not response.content:
            return {}
        return response.json()

    async def register(self, user_id: str, password: str) -> dict[str, Any]:
        """Register a new user and adopt its access token."""
        result = await self.request(
            "POST",
            "/register",
            json={"username": user_id, "password": password, "auth": {"type": "m.login.dummy"}},
        )
        self.user_id = result.get("user_id")
        self.access_token = result.get("access_token")
        return result

    async def login(self, user_id: str, password: str) -> dict[str, Any]:
        result = await self.request(
            "POST",
            "/login",
            json={"type": "m.login.password", "user": user_id, "password": password},
        )
        self.user_id = result.get("user_id")
        self.access_token = result.get("access_token")
        return result

    async def create_room(
        self, alias: str | None = None, visibility: str = "private"
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"visibility": visibility}
        if alias:
            body["room_alias_name"] = alias
        return await self.request("POST", "/createRoom", json=body)

    async def join_room(self, room: str) -> dict[str, Any]:
        return await self.request("POST", f"/join/{quote(room, safe='')}", json={})

    async def send_message(
        self, room_id: str, body: str, txn_id: str | None = None
    ) -> dict[str, Any]:
        txn = txn_id or uuid.uuid4().hex
        return await self.request(
            "PUT",
            f"/rooms/{quote(room_id, safe='')}/send/m.room.message/{txn}",
            json={"msgtype": "m.text", "body": body},
        )

    async def get_room_state(self, room_id: str) -> list[dict[str, Any]]:
        result = await self.request("GET", f"/rooms/{quote(room_id, safe='')}/state")
        return result if isinstance(result, list) else result.get("state", [])

    async def get_events(self, since: str | None = None, timeout: int = 0) -> dict[str, Any]:
        """Poll the event stream once.

        Every returned event is passed to the request logger, if any.
        """
        params: dict[str, Any] = {"timeout": timeout}
        if since:
            params["from"] = since
        result = await self.request("GET", "/events", params=params)
        if self.request_logger is not None:
            for event in result.get("chunk", []):
                self.request_logger.on_event(self.base_url, event)
        return result


async def connect_clients(
    servers: list[SynapseServer],
    config: SytestConfig,
    on_error: ErrorHook | None = report_request_failure,
) -> list[MatrixClient]:
    """Open one session per ready instance, in instance order."""
    request_logger = RequestLogger() if config.client_log else None
    clients = []
    for server in servers:
        client = MatrixClient(
            server=config.host,
            port=server.port,
            tls=config.tls,
            verify=config.verify_tls,
            on_error=on_error,
            request_logger=request_logger,
        )
        clients.append(await client.open())
        logger.debug(f"Client connected to {client.base_url}")
    return clients


async def close_clients(clients: list[MatrixClient]) -> None:
    for client in clients:
        await client.close()
