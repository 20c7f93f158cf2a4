"""Client of the OMERO web gateway (``/webgateway/...``).

Serves thumbnails, image metadata, some tree icons and JPEG-rendered
regions of RGB images.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from PIL import Image as PILImage

from omero_client.entities.image_metadata import ImageMetadata
from omero_client.entities.server import OrphanedFolder
from omero_client.entities.server_entities import Dataset, Project
from omero_client.web.requests import RequestSender

ICON_URL = "{host}/static/webgateway/img/{name}"
THUMBNAIL_URL = "{host}/webgateway/render_thumbnail/{image_id}/{size}"
IMAGE_DATA_URL = "{host}/webgateway/imgData/{image_id}"
REGION_URL = (
    "{host}/webgateway/render_image_region/{image_id}/{z}/{t}/"
    "?region={x},{y},{width},{height}&{rendering}"
)
TILE_URL = (
    "{host}/webgateway/render_image_region/{image_id}/{z}/{t}/"
    "?tile={level},{column},{row},{width},{height}&{rendering}"
)

# Fixed RGB rendering: each channel at full range in its own color, not inverted
RGB_CHANNELS = "1|0:255$FF0000,2|0:255$00FF00,3|0:255$0000FF"
RGB_MAPS = "[" + ",".join(['{"inverted":{"enabled":false}}'] * 3) + "]"

PROJECT_ICON = "folder16.png"
DATASET_ICON = "folder_image16.png"
ORPHANED_FOLDER_ICON = "folder_yellow16.png"


def rendering_parameters(quality: float) -> str:
    """Query string rendering the three channels of an RGB image as a JPEG."""
    return urlencode(
        {"c": RGB_CHANNELS, "maps": RGB_MAPS, "m": "c", "p": "normal", "q": f"{quality:f}"}
    )


class WebGatewayApi:
    """Web gateway endpoint of one server."""

    def __init__(self, host: str, sender: RequestSender) -> None:
        self.host = host
        self._sender = sender

    def __str__(self) -> str:
        return f"Web gateway API of {self.host}"

    @staticmethod
    def can_read(metadata: ImageMetadata) -> bool:
        """Only three 8-bit channels render faithfully as an RGB JPEG."""
        return metadata.is_rgb

    def icon_uri(self, entity_type: type[Any]) -> str | None:
        """Icon link of projects, datasets and the orphaned folder; None otherwise."""
        if issubclass(entity_type, Project):
            name = PROJECT_ICON
        elif issubclass(entity_type, Dataset):
            name = DATASET_ICON
        elif issubclass(entity_type, OrphanedFolder):
            name = ORPHANED_FOLDER_ICON
        else:
            return None
        return ICON_URL.format(host=self.host, name=name)

    async def get_icon(self, entity_type: type[Any]) -> PILImage.Image | None:
        uri = self.icon_uri(entity_type)
        if uri is None:
            return None
        return await self._sender.get_image(uri)

    async def get_thumbnail(self, image_id: int, size: int) -> PILImage.Image | None:
        return await self._sender.get_image(
            THUMBNAIL_URL.format(host=self.host, image_id=image_id, size=size)
        )

    async def get_image_data(self, image_id: int) -> Any | None:
        """Raw ``imgData`` JSON of an image; see parse_image_metadata."""
        return await self._sender.get_json(
            IMAGE_DATA_URL.format(host=self.host, image_id=image_id)
        )

    async def read_region(
        self,
        image_id: int,
        *,
        z: int,
        t: int,
        x: int,
        y: int,
        width: int,
        height: int,
        quality: float,
    ) -> PILImage.Image | None:
        """Render a rectangle of the full resolution image as a JPEG."""
        return await self._sender.get_image(
            REGION_URL.format(
                host=self.host,
                image_id=image_id,
                z=z,
                t=t,
                x=x,
                y=y,
                width=width,
                height=height,
                rendering=rendering_parameters(quality),
            )
        )

    async def read_tile(
        self,
        image_id: int,
        *,
        z: int,
        t: int,
        level: int,
        column: int,
        row: int,
        width: int,
        height: int,
        quality: float,
    ) -> PILImage.Image | None:
        """Render one tile of the server's tile grid as a JPEG.

        ``level`` uses the server's numbering (0 is the lowest resolution);
        ``column`` and ``row`` index the grid of ``width`` x ``height`` tiles
        of that level.
        """
        return await self._sender.get_image(
            TILE_URL.format(
                host=self.host,
                image_id=image_id,
                z=z,
                t=t,
                level=level,
                column=column,
                row=row,
                width=width,
                height=height,
                rendering=rendering_parameters(quality),
            )
        )
