"""Client of the OMERO pixel buffer microservice.

The microservice listens on its own port of the server host and returns
single planes (one channel of one z/t position) as TIFF, in the image's
native sample type.
"""

from __future__ import annotations

import io
import logging

import numpy as np
import tifffile

from omero_client.entities.image_metadata import ImageMetadata, PixelType
from omero_client.web.requests import RequestSender
from omero_client.web.urls import with_port

logger = logging.getLogger(__name__)

TILE_ROOT_URL = "{host}/tile"
PLANE_URL = (
    "{host}/tile/{image_id}/{z}/{c}/{t}"
    "?x={x}&y={y}&w={width}&h={height}&format=tif&resolution={resolution}"
)

# Sample types the microservice cannot serve
UNSUPPORTED_PIXEL_TYPES = frozenset({PixelType.INT8, PixelType.UINT32})


def decode_plane(content: bytes) -> np.ndarray:
    """Decode a single-plane TIFF, keeping its sample type.

    Raises:
        ValueError: If the body is not a TIFF or holds more than one band.
    """
    try:
        plane = tifffile.imread(io.BytesIO(content))
    except tifffile.TiffFileError as e:
        raise ValueError(f"not a TIFF: {e}") from e
    plane = np.squeeze(plane)
    if plane.ndim != 2:
        raise ValueError(f"expected a single band, got shape {plane.shape}")
    return plane


class PixelBufferApi:
    """Raw plane reader of one server."""

    def __init__(self, host: str, sender: RequestSender, port: int) -> None:
        self.host = with_port(host, port)
        self._sender = sender

    def __str__(self) -> str:
        return f"Pixel buffer API of {self.host}"

    async def is_available(self) -> bool:
        """Whether the microservice answers on its port."""
        return await self._sender.is_link_reachable(
            TILE_ROOT_URL.format(host=self.host), method="OPTIONS"
        )

    @staticmethod
    def can_read(metadata: ImageMetadata) -> bool:
        return metadata.pixel_type not in UNSUPPORTED_PIXEL_TYPES

    async def read_plane(
        self,
        image_id: int,
        *,
        z: int,
        c: int,
        t: int,
        x: int,
        y: int,
        width: int,
        height: int,
        resolution: int,
    ) -> np.ndarray | None:
        """Return one plane as a 2D array, or None if it could not be read.

        ``resolution`` uses the server's numbering (0 is the lowest resolution).
        """
        uri = PLANE_URL.format(
            host=self.host,
            image_id=image_id,
            z=z,
            c=c,
            t=t,
            x=x,
            y=y,
            width=width,
            height=height,
            resolution=resolution,
        )
        content = await self._sender.get_bytes(uri)
        if content is None:
            return None
        try:
            return decode_plane(content)
        except ValueError as e:
            logger.error("Plane %d of image %d is unreadable: %s", c, image_id, e)
            return None
