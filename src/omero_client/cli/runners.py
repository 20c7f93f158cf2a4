"""Async bodies of the CLI commands.

Each runner opens a connection with the configured credentials (or
anonymously if none are configured and the server allows it), does its
work and always closes the connection. A username configured without
a password, or the reverse, is refused before connecting.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image as PILImage

from omero_client.client import Connection, ConnectionStatus
from omero_client.config import settings
from omero_client.entities.repository import RepositoryEntity
from omero_client.pixels.tiles import TileRequest
from omero_client.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionFailedError(RuntimeError):
    """Raised when a CLI command cannot connect to the server."""


@asynccontextmanager
async def _connect(url: str) -> AsyncIterator[Connection]:
    username = password = None
    if settings.OMERO_USERNAME or settings.OMERO_PASSWORD:
        username, password = settings.require_credentials()
    connection = await Connection.create(
        url, username, password, skip_authentication=True
    )
    if connection.status is not ConnectionStatus.SUCCESS:
        reason = connection.fail_reason.value if connection.fail_reason else None
        raise ConnectionFailedError(
            f"Cannot connect to {url}: {connection.status.value}"
            + (f" ({reason})" if reason else "")
        )
    try:
        yield connection
    finally:
        await connection.close()


async def ping_server(url: str) -> dict[str, Any]:
    """Connect, ping once and report the session."""
    async with _connect(url) as connection:
        alive = await connection.apis.ping()
        return {
            "host": connection.host,
            "authenticated": connection.is_authenticated,
            "username": connection.username,
            "alive": alive,
        }


async def _walk(entity: RepositoryEntity, depth: int, max_depth: int) -> dict[str, Any]:
    node: dict[str, Any] = {"label": entity.label}
    if depth < max_depth and entity.has_children:
        children = await entity.get_children()
        node["children"] = [await _walk(child, depth + 1, max_depth) for child in children]
    return node


async def browse_server(url: str, depth: int) -> dict[str, Any]:
    """Return the browsing tree of the server down to ``depth`` levels."""
    async with _connect(url) as connection:
        logger.info("Browsing server", host=connection.host, depth=depth)
        return await _walk(connection.server, 0, depth)


async def read_tile_to_file(
    url: str, image_id: int, request: TileRequest, output: Path
) -> dict[str, Any]:
    """Read one tile and save it to ``output``.

    RGB tiles are saved with Pillow in the format given by the file
    suffix; multi-channel tiles are saved as a ``.npy`` array.
    """
    async with _connect(url) as connection:
        tile = await connection.apis.read_tile(image_id, request)
        if tile is None:
            raise RuntimeError(f"Cannot read {request} of image {image_id}")

        if isinstance(tile, PILImage.Image):
            tile.save(output)
            shape = [tile.height, tile.width, len(tile.getbands())]
        else:
            output = output.with_suffix(".npy")
            np.save(output, tile)
            shape = list(tile.shape)
        logger.info("Tile saved", path=str(output), shape=shape)
        return {"path": str(output), "shape": shape}


async def list_rois(url: str, image_id: int) -> list[dict[str, Any]]:
    """Return the shapes of an image's ROIs as JSON."""
    async with _connect(url) as connection:
        shapes = await connection.apis.get_rois(image_id)
        return [{"roi_id": shape.roi_id, **shape.to_json()} for shape in shapes]
