"""Image metadata read from the web gateway's ``imgData`` endpoint.

Resolution levels are indexed finest-first here (level 0 is the full
resolution image), which is the opposite of the server's own numbering;
see omero_client.pixels.tiles.server_level.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from omero_client.exceptions import DecodeError

# Tile edge used when the server does not tile the image
MAX_UNTILED_SIZE = 3192


class PixelType(str, Enum):
    """Sample types an OMERO image can have, by their imgData name."""

    UINT8 = "uint8"
    INT8 = "int8"
    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    FLOAT32 = "float"
    FLOAT64 = "double"

    @property
    def dtype(self) -> np.dtype[Any]:
        return np.dtype(_DTYPES[self])

    @classmethod
    def from_name(cls, name: str) -> PixelType:
        """Accept both imgData names ("float") and numpy names ("float32").

        Raises:
            ValueError: If the name is not a known pixel type.
        """
        lowered = name.lower()
        for pixel_type in cls:
            if lowered in (pixel_type.value, _DTYPES[pixel_type]):
                return pixel_type
        raise ValueError(f"Unknown pixel type {name!r}")


_DTYPES: dict[PixelType, str] = {
    PixelType.UINT8: "uint8",
    PixelType.INT8: "int8",
    PixelType.UINT16: "uint16",
    PixelType.INT16: "int16",
    PixelType.UINT32: "uint32",
    PixelType.INT32: "int32",
    PixelType.FLOAT32: "float32",
    PixelType.FLOAT64: "float64",
}


@dataclass(frozen=True)
class Channel:
    name: str
    color: str  # RRGGBB hex


@dataclass(frozen=True)
class ResolutionLevel:
    width: int
    height: int
    downsample: float


@dataclass(frozen=True)
class ImageMetadata:
    """Immutable description of an OMERO image's pixels.

    Attributes:
        image_id: OMERO image ID.
        name: Image name as reported by the server.
        width: Full resolution width in pixels.
        height: Full resolution height in pixels.
        size_z: Number of z-slices.
        size_t: Number of time points.
        tile_width: Native tile width of the server.
        tile_height: Native tile height of the server.
        levels: Resolution levels, full resolution first.
        pixel_type: Sample type of every channel.
        channels: Channel names and display colors.
        magnification: Nominal objective magnification, if known.
        pixel_width_microns: Physical pixel width, if known.
        pixel_height_microns: Physical pixel height, if known.
        z_spacing_microns: Physical distance between z-slices, if known.
    """

    image_id: int
    name: str
    width: int
    height: int
    size_z: int
    size_t: int
    tile_width: int
    tile_height: int
    levels: tuple[ResolutionLevel, ...]
    pixel_type: PixelType
    channels: tuple[Channel, ...]
    magnification: float | None = None
    pixel_width_microns: float | None = None
    pixel_height_microns: float | None = None
    z_spacing_microns: float | None = None

    @property
    def num_levels(self) -> int:
        return len(self.levels)

    @property
    def num_channels(self) -> int:
        return len(self.channels)

    @property
    def is_rgb(self) -> bool:
        """Three 8-bit channels: served directly as RGB JPEG by the web gateway."""
        return self.num_channels == 3 and self.pixel_type is PixelType.UINT8

    def get_level(self, level: int) -> ResolutionLevel:
        if not 0 <= level < self.num_levels:
            raise IndexError(
                f"Level {level} out of range [0, {self.num_levels - 1}]"
            )
        return self.levels[level]


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def parse_image_metadata(image_id: int, data: Any) -> ImageMetadata:
    """Build ImageMetadata from an ``imgData`` JSON response.

    Raises:
        DecodeError: If a required field is missing or malformed.
    """
    try:
        size = data["size"]
        width = int(size["width"])
        height = int(size["height"])
        size_z = int(size.get("z", 1))
        size_t = int(size.get("t", 1))

        meta = data.get("meta", {})
        pixel_type = PixelType.from_name(str(meta.get("pixelsType", "uint8")))

        channels = tuple(
            Channel(
                name=str(channel.get("label", f"Channel {index}")),
                color=str(channel.get("color", "FFFFFF")),
            )
            for index, channel in enumerate(data.get("channels", []))
        )
        if not channels:
            channels = tuple(
                Channel(name=f"Channel {index}", color="FFFFFF")
                for index in range(int(size.get("c", 1)))
            )

        if data.get("tiles"):
            num_levels = int(data.get("levels", 1))
            if num_levels > 1:
                zoom = data["zoomLevelScaling"]
                downsamples = [1.0 / float(zoom[str(i)]) for i in range(num_levels)]
            else:
                downsamples = [1.0]
            tile_size = data.get("tile_size")
            if tile_size:
                tile_width = int(float(tile_size["width"]))
                tile_height = int(float(tile_size["height"]))
            else:
                tile_width, tile_height = width, height
        else:
            downsamples = [1.0]
            tile_width = min(width, MAX_UNTILED_SIZE)
            tile_height = min(height, MAX_UNTILED_SIZE)

        levels = tuple(
            ResolutionLevel(
                width=int(width / downsample),
                height=int(height / downsample),
                downsample=downsample,
            )
            for downsample in downsamples
        )

        pixel_size = data.get("pixel_size") or {}
        return ImageMetadata(
            image_id=image_id,
            name=str(meta.get("imageName", "")),
            width=width,
            height=height,
            size_z=size_z,
            size_t=size_t,
            tile_width=tile_width,
            tile_height=tile_height,
            levels=levels,
            pixel_type=pixel_type,
            channels=channels,
            magnification=_optional_float(data.get("nominalMagnification")),
            pixel_width_microns=_optional_float(pixel_size.get("x")),
            pixel_height_microns=_optional_float(pixel_size.get("y")),
            z_spacing_microns=_optional_float(pixel_size.get("z")),
        )
    except (KeyError, TypeError, ValueError, ZeroDivisionError, AttributeError) as e:
        raise DecodeError(f"Invalid imgData for image {image_id}: {e}") from e
