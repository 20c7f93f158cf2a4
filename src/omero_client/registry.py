"""Process-wide set of open connections, one per server."""

from __future__ import annotations

import logging

from omero_client.client import Connection, ConnectionStatus, FailReason
from omero_client.config import Settings
from omero_client.exceptions import OmeroError
from omero_client.web.urls import normalize_server_uri

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Connections keyed by normalized server URI (``scheme://authority``).

    Creating a connection to a server that is already being connected to
    fails immediately with ``FailReason.ALREADY_CREATING`` instead of
    opening a second session.
    """

    def __init__(self, app_settings: Settings | None = None) -> None:
        self._settings = app_settings
        self._connections: dict[str, Connection] = {}
        self._creating: set[str] = set()

    @property
    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    def get(self, uri: str) -> Connection | None:
        try:
            return self._connections.get(normalize_server_uri(uri))
        except OmeroError:
            return None

    async def get_or_create(
        self,
        uri: str,
        username: str | None = None,
        password: str | None = None,
        *,
        skip_authentication: bool = False,
    ) -> Connection:
        """Return the connection to ``uri``'s server, creating it if needed.

        Only successful connections are registered.
        """
        try:
            host = normalize_server_uri(uri)
        except OmeroError as e:
            logger.error("Cannot connect: %s", e)
            return Connection.failed(FailReason.INVALID_URI_FORMAT)

        existing = self._connections.get(host)
        if existing is not None:
            return existing
        if host in self._creating:
            logger.warning("A connection to %s is already being created", host)
            return Connection.failed(FailReason.ALREADY_CREATING, host=host)

        self._creating.add(host)
        try:
            connection = await Connection.create(
                host,
                username,
                password,
                skip_authentication=skip_authentication,
                app_settings=self._settings,
                on_disconnect=self.remove,
            )
        finally:
            self._creating.discard(host)

        if connection.status is ConnectionStatus.SUCCESS:
            self._connections[host] = connection
        return connection

    async def remove(self, connection: Connection) -> None:
        """Unregister and close ``connection``."""
        if connection.host is not None and self._connections.get(connection.host) is connection:
            del self._connections[connection.host]
        await connection.close()

    async def close_all(self) -> None:
        for connection in self.connections:
            await self.remove(connection)
