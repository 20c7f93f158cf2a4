"""Connection to one OMERO server: discovery, login, keep-alive and shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from omero_client.apis.handler import ApisHandler
from omero_client.config import Settings, settings
from omero_client.entities.login import LoginResponse, LoginStatus
from omero_client.entities.server import Server
from omero_client.exceptions import OmeroError
from omero_client.utils.logging import set_correlation_context
from omero_client.web.urls import normalize_server_uri

logger = logging.getLogger(__name__)

DisconnectCallback = Callable[["Connection"], Awaitable[None]]


class ConnectionStatus(str, Enum):
    CANCELED = "canceled"
    FAILED = "failed"
    SUCCESS = "success"


class FailReason(str, Enum):
    ALREADY_CREATING = "already_creating"
    INVALID_URI_FORMAT = "invalid_uri_format"


_STATUS_OF_LOGIN: dict[LoginStatus, ConnectionStatus] = {
    LoginStatus.SUCCESS: ConnectionStatus.SUCCESS,
    LoginStatus.UNAUTHENTICATED: ConnectionStatus.SUCCESS,
    LoginStatus.FAILED: ConnectionStatus.FAILED,
    LoginStatus.CANCELED: ConnectionStatus.CANCELED,
}


class Connection:
    """A (possibly anonymous) session with one server.

    Always obtain one through ``Connection.create`` and check ``status``:
    only SUCCESS connections carry an API handler and a browsing root.

    Usage:
        connection = await Connection.create("https://omero.example.org", "user", "pass")
        if connection.status is ConnectionStatus.SUCCESS:
            projects = await connection.server.get_children()
        await connection.close()
    """

    def __init__(
        self,
        status: ConnectionStatus,
        *,
        host: str | None = None,
        fail_reason: FailReason | None = None,
        apis: ApisHandler | None = None,
        server: Server | None = None,
        login_response: LoginResponse | None = None,
        app_settings: Settings | None = None,
        on_disconnect: DisconnectCallback | None = None,
    ) -> None:
        self.status = status
        self.host = host
        self.fail_reason = fail_reason
        self._apis = apis
        self._server = server
        self._login_response = login_response
        self._settings = app_settings or settings
        self._on_disconnect = on_disconnect
        self._keep_alive_task: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    def failed(
        cls,
        fail_reason: FailReason | None = None,
        status: ConnectionStatus = ConnectionStatus.FAILED,
        host: str | None = None,
    ) -> Connection:
        return cls(status, host=host, fail_reason=fail_reason)

    @classmethod
    async def create(
        cls,
        uri: str,
        username: str | None = None,
        password: str | None = None,
        *,
        skip_authentication: bool = False,
        app_settings: Settings | None = None,
        on_disconnect: DisconnectCallback | None = None,
    ) -> Connection:
        """Connect to the server ``uri`` points to.

        Without credentials, the connection is anonymous if
        ``skip_authentication`` is set and the server allows anonymous
        reads; otherwise it is CANCELED.

        Returns:
            A connection whose ``status`` tells whether it is usable.
        """
        app_settings = app_settings or settings
        try:
            host = normalize_server_uri(uri)
        except OmeroError as e:
            logger.error("Cannot connect: %s", e)
            return cls.failed(FailReason.INVALID_URI_FORMAT)
        set_correlation_context(host=host)

        apis = await ApisHandler.create(host, app_settings)
        if apis is None:
            return cls.failed(host=host)

        has_credentials = username is not None and password is not None
        if (
            not has_credentials
            and skip_authentication
            and await apis.can_skip_authentication()
        ):
            login_response = LoginResponse.unsuccessful(LoginStatus.UNAUTHENTICATED)
        else:
            login_response = await apis.login(username, password)

        status = _STATUS_OF_LOGIN[login_response.status]
        server = None
        if status is ConnectionStatus.SUCCESS:
            if login_response.status is LoginStatus.SUCCESS:
                server = await Server.create(
                    apis, login_response.group, login_response.user_id
                )
            else:
                server = await Server.create(apis)
            if server is None:
                status = ConnectionStatus.FAILED

        if status is not ConnectionStatus.SUCCESS:
            logger.warning("Connection to %s %s", host, status.value)
            if login_response.status is LoginStatus.SUCCESS:
                await apis.logout()
            await apis.close()
            return cls.failed(status=status, host=host)

        connection = cls(
            status,
            host=host,
            apis=apis,
            server=server,
            login_response=login_response,
            app_settings=app_settings,
            on_disconnect=on_disconnect,
        )
        if connection.is_authenticated:
            connection._start_keep_alive()
        logger.info("Connected to %s as %s", host, connection.username or "anonymous")
        return connection

    def __str__(self) -> str:
        return f"Connection to {self.host} ({self.status.value})"

    @property
    def apis(self) -> ApisHandler:
        if self._apis is None:
            raise RuntimeError(f"{self} has no API handler")
        return self._apis

    @property
    def server(self) -> Server:
        if self._server is None:
            raise RuntimeError(f"{self} has no server")
        return self._server

    @property
    def is_authenticated(self) -> bool:
        return (
            self._login_response is not None
            and self._login_response.status is LoginStatus.SUCCESS
        )

    @property
    def username(self) -> str | None:
        return self._login_response.username if self._login_response else None

    @property
    def session_uuid(self) -> str | None:
        return self._login_response.session_uuid if self._login_response else None

    @property
    def is_keeping_alive(self) -> bool:
        return self._keep_alive_task is not None and not self._keep_alive_task.done()

    def _start_keep_alive(self) -> None:
        if self._keep_alive_task is None:
            self._keep_alive_task = asyncio.create_task(
                self._keep_alive(), name=f"omero-keep-alive-{self.host}"
            )

    async def _keep_alive(self) -> None:
        """Ping the server periodically until too many pings in a row fail."""
        failures = 0
        while True:
            await asyncio.sleep(self._settings.KEEPALIVE_INTERVAL_SECONDS)
            if await self.apis.ping():
                failures = 0
                continue

            failures += 1
            logger.warning(
                "Keep-alive ping of %s failed (%d/%d)",
                self.host,
                failures,
                self._settings.KEEPALIVE_FAILURE_THRESHOLD,
            )
            if failures >= self._settings.KEEPALIVE_FAILURE_THRESHOLD:
                break

        logger.error("Lost connection to %s", self.host)
        if self._on_disconnect is not None:
            await self._on_disconnect(self)

    async def close(self) -> None:
        """Stop the keep-alive, log out (best effort) and release the session.

        Safe to call more than once, including from the disconnect callback.
        """
        if self._closed:
            return
        self._closed = True

        task = self._keep_alive_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._apis is not None:
            if self.is_authenticated and not await self._apis.logout():
                logger.warning("Could not log out of %s", self.host)
            await self._apis.close()
        logger.info("Closed connection to %s", self.host)
