"""Tile reading over HTTP.

Two sources serve pixels:

- the web gateway renders RGB images (three uint8 channels) as JPEG,
  either as the cells of its tile grid covering the request (pyramidal
  images) or as the requested region itself (single-resolution images);
- the pixel buffer microservice returns each channel of any other image
  as a raw plane in the native sample type.

Resolution levels are numbered finest-first by callers (level 0 is the
full resolution) but coarsest-first by the server, so every server call
goes through ``server_level``.

Example:
    >>> reader = TileReader(metadata, webgateway, pixel_buffer)
    >>> tile = await reader.read_tile(TileRequest(level=1, x=0, y=0, width=512, height=512))
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from omero_client.entities.image_metadata import ImageMetadata

if TYPE_CHECKING:
    from omero_client.apis.pixel_buffer_api import PixelBufferApi
    from omero_client.apis.webgateway_api import WebGatewayApi

logger = logging.getLogger(__name__)

Tile = Image.Image | np.ndarray

# left, top, right, bottom in the pixel coordinates of one level
Box = tuple[int, int, int, int]

# Channels composed into an RGB image; more are returned as a band array
_MAX_DISPLAY_CHANNELS = 3


@dataclass(frozen=True)
class TileRequest:
    """Rectangle of one resolution level, in that level's pixel coordinates.

    Attributes:
        level: Resolution level, 0 being the full resolution.
        x: Left edge.
        y: Top edge.
        width: Width in pixels.
        height: Height in pixels.
        z: Z-slice.
        t: Time point.
    """

    level: int
    x: int
    y: int
    width: int
    height: int
    z: int = 0
    t: int = 0

    def __post_init__(self) -> None:
        if self.level < 0:
            raise ValueError(f"level must be non-negative, got {self.level}")
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Tile origin must be non-negative, got ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Tile size must be positive, got {self.width}x{self.height}"
            )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


def server_level(num_levels: int, level: int) -> int:
    """Convert a finest-first level index to the server's coarsest-first one.

    Raises:
        ValueError: If ``level`` is not in ``[0, num_levels - 1]``.
    """
    if not 0 <= level < num_levels:
        raise ValueError(f"Level {level} out of range [0, {num_levels - 1}]")
    return num_levels - level - 1


def resize(image: Image.Image, size: tuple[int, int], smooth: bool) -> Image.Image:
    """Resize ``image`` to ``size`` unless it already has it."""
    if image.size == size:
        return image
    resample = Image.Resampling.BILINEAR if smooth else Image.Resampling.NEAREST
    return image.resize(size, resample=resample)


def resize_bands(bands: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    """Nearest-neighbour resize of an ``(h, w, c)`` array to ``size`` (width, height)."""
    height, width = bands.shape[:2]
    if (width, height) == size:
        return bands
    rows = (np.arange(size[1]) * height // size[1]).astype(np.intp)
    columns = (np.arange(size[0]) * width // size[0]).astype(np.intp)
    return bands[rows[:, None], columns[None, :]]


def compose_rgb(planes: list[np.ndarray]) -> Image.Image:
    """Place up to three planes into the R, G and B bands, clipped to 0-255.

    Missing bands stay black.
    """
    if not 1 <= len(planes) <= _MAX_DISPLAY_CHANNELS:
        raise ValueError(f"Expected 1 to 3 planes, got {len(planes)}")
    height, width = planes[0].shape
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    for band, plane in enumerate(planes):
        rgb[:, :, band] = np.clip(plane, 0, 255).astype(np.uint8)
    return Image.fromarray(rgb)


def stack_bands(planes: list[np.ndarray], dtype: np.dtype) -> np.ndarray:
    """Stack planes into an ``(h, w, c)`` array of ``dtype``, band by band."""
    height, width = planes[0].shape
    bands = np.empty((height, width, len(planes)), dtype=dtype)
    for band, plane in enumerate(planes):
        bands[:, :, band] = plane
    return bands


def covering_tiles(
    box: Box, tile_width: int, tile_height: int, level_width: int, level_height: int
) -> list[Box]:
    """Boxes of the server tile grid cells overlapping ``box``, row by row.

    Cells on the right and bottom edges of the level are cut to the level size.
    """
    left, top, right, bottom = box
    cells = []
    for row in range(top // tile_height, math.ceil(bottom / tile_height)):
        for column in range(left // tile_width, math.ceil(right / tile_width)):
            x = column * tile_width
            y = row * tile_height
            cells.append(
                (x, y, min(x + tile_width, level_width), min(y + tile_height, level_height))
            )
    return cells


def _box_size(box: Box) -> tuple[int, int]:
    left, top, right, bottom = box
    return right - left, bottom - top


class TileReader:
    """Reads tiles of one image, picking the source from its metadata.

    The returned tile always has the requested size; parts of the request
    outside the image are black (or zero).
    """

    def __init__(
        self,
        metadata: ImageMetadata,
        webgateway: WebGatewayApi,
        pixel_buffer: PixelBufferApi,
        *,
        quality: float = 0.9,
        allow_smooth_interpolation: bool = False,
    ) -> None:
        self._metadata = metadata
        self._webgateway = webgateway
        self._pixel_buffer = pixel_buffer
        self._quality = quality
        self._allow_smooth_interpolation = allow_smooth_interpolation

    def __str__(self) -> str:
        return f"Tile reader of image {self._metadata.image_id}"

    @property
    def metadata(self) -> ImageMetadata:
        return self._metadata

    @property
    def is_pyramidal(self) -> bool:
        """Pyramidal images are read through the server's tile grid, others by region."""
        return self._metadata.num_levels > 1

    async def read_tile(self, request: TileRequest) -> Tile | None:
        """Read one tile.

        Returns:
            An RGB PIL image for RGB images or images with at most three
            channels, an ``(h, w, c)`` array of the native sample type for
            images with more channels, or None if any part could not be read
            or the request lies outside the image.

        Raises:
            ValueError: If the request level does not exist for this image.
        """
        level = server_level(self._metadata.num_levels, request.level)
        box = self._visible_box(request)
        if box is None:
            logger.error(
                "%s lies outside image %d", request, self._metadata.image_id
            )
            return None
        if self._metadata.is_rgb:
            return await self._read_rendered(request, level, box)
        return await self._read_raw(request, level, box)

    def _visible_box(self, request: TileRequest) -> Box | None:
        resolution = self._metadata.get_level(request.level)
        right = min(request.x + request.width, resolution.width)
        bottom = min(request.y + request.height, resolution.height)
        if right <= request.x or bottom <= request.y:
            return None
        return request.x, request.y, right, bottom

    async def _read_rendered(
        self, request: TileRequest, level: int, box: Box
    ) -> Image.Image | None:
        image_id = self._metadata.image_id
        if self.is_pyramidal:
            tile_width = self._metadata.tile_width
            tile_height = self._metadata.tile_height
            resolution = self._metadata.get_level(request.level)
            pieces = covering_tiles(
                box, tile_width, tile_height, resolution.width, resolution.height
            )
            images = await asyncio.gather(
                *(
                    self._webgateway.read_tile(
                        image_id,
                        z=request.z,
                        t=request.t,
                        level=level,
                        column=left // tile_width,
                        row=top // tile_height,
                        width=tile_width,
                        height=tile_height,
                        quality=self._quality,
                    )
                    for left, top, _, _ in pieces
                )
            )
        else:
            pieces = [box]
            width, height = _box_size(box)
            images = [
                await self._webgateway.read_region(
                    image_id,
                    z=request.z,
                    t=request.t,
                    x=box[0],
                    y=box[1],
                    width=width,
                    height=height,
                    quality=self._quality,
                )
            ]

        if any(image is None for image in images):
            logger.error("Could not render every part of %s for image %d", request, image_id)
            return None

        tile = Image.new("RGB", request.size)
        for piece, image in zip(pieces, images, strict=True):
            part = resize(
                image.convert("RGB"), _box_size(piece), self._allow_smooth_interpolation
            )
            tile.paste(part, (piece[0] - request.x, piece[1] - request.y))
        return tile

    async def _read_raw(self, request: TileRequest, level: int, box: Box) -> Tile | None:
        image_id = self._metadata.image_id
        width, height = _box_size(box)
        planes = await asyncio.gather(
            *(
                self._pixel_buffer.read_plane(
                    image_id,
                    z=request.z,
                    c=channel,
                    t=request.t,
                    x=box[0],
                    y=box[1],
                    width=width,
                    height=height,
                    resolution=level,
                )
                for channel in range(self._metadata.num_channels)
            )
        )
        if any(plane is None for plane in planes):
            logger.error("Could not read every channel of %s for image %d", request, image_id)
            return None
        if len({plane.shape for plane in planes}) > 1:
            logger.error("Channels of %s for image %d have different shapes", request, image_id)
            return None

        dtype = self._metadata.pixel_type.dtype
        received = planes[0].dtype
        if received.kind != dtype.kind or received.itemsize != dtype.itemsize:
            logger.error(
                "Channels of image %d are %s, expected %s", image_id, received, dtype
            )
            return None
        planes = [plane.astype(dtype, copy=False) for plane in planes]

        if len(planes) <= _MAX_DISPLAY_CHANNELS:
            part = resize(compose_rgb(planes), (width, height), self._allow_smooth_interpolation)
            if part.size == request.size:
                return part
            tile = Image.new("RGB", request.size)
            tile.paste(part, (0, 0))
            return tile

        bands = np.zeros((request.height, request.width, len(planes)), dtype=dtype)
        bands[:height, :width] = resize_bands(stack_bands(planes, dtype), (width, height))
        return bands
