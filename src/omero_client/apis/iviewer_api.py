"""Client of the OMERO iviewer, used to write ROIs."""

from __future__ import annotations

import logging
from typing import Any

from omero_client.entities.shapes import Shape
from omero_client.web.requests import RequestSender

logger = logging.getLogger(__name__)

ROIS_URL = "{host}/iviewer/persist_rois/"
ROIS_REFERER_URL = "{host}/iviewer/?images={image_id}"


def build_rois_body(
    image_id: int,
    shapes_to_add: list[Shape],
    shapes_to_remove: list[Shape],
) -> dict[str, Any]:
    """Build the ``persist_rois`` payload adding and removing shapes in one call.

    Shapes to remove are identified by their ``old_id`` (``roiId:shapeId``)
    and grouped by ROI.
    """
    empty_rois: dict[str, list[str]] = {}
    for shape in shapes_to_remove:
        empty_rois.setdefault(str(shape.roi_id), []).append(shape.old_id)

    return {
        "imageId": image_id,
        "rois": {
            "count": len(shapes_to_add) + len(shapes_to_remove),
            "empty_rois": empty_rois,
            "new_and_deleted": [],
            "deleted": {},
            "new": [shape.to_json() for shape in shapes_to_add],
            "modified": [],
        },
    }


class IViewerApi:
    """Iviewer endpoint of one server."""

    def __init__(self, host: str, sender: RequestSender) -> None:
        self.host = host
        self._sender = sender

    def __str__(self) -> str:
        return f"IViewer API of {self.host}"

    async def write_rois(
        self,
        image_id: int,
        shapes_to_add: list[Shape],
        shapes_to_remove: list[Shape],
        token: str,
    ) -> bool:
        """Add and remove shapes of an image.

        Returns:
            False if the server did not answer or answered with an error.
        """
        response = await self._sender.post_json(
            ROIS_URL.format(host=self.host),
            build_rois_body(image_id, shapes_to_add, shapes_to_remove),
            ROIS_REFERER_URL.format(host=self.host, image_id=image_id),
            token,
        )
        if response is None:
            return False
        if "error" in response.lower():
            logger.error("Error when writing ROIs of image %d: %s", image_id, response)
            return False
        return True
