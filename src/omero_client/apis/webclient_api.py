"""Client of the OMERO webclient (``/webclient/...``).

Covers what the JSON API does not expose: session keep-alive and logout,
browser links to entities, orphaned image IDs, annotations, search, and
the icons of the webclient's tree.
"""

from __future__ import annotations

import logging
import time
from urllib.parse import urlencode

from PIL import Image as PILImage

from omero_client.entities.annotations import AnnotationGroup
from omero_client.entities.search import SearchQuery, SearchResult, parse_search_results
from omero_client.entities.server_entities import (
    Dataset,
    Image,
    Plate,
    PlateAcquisition,
    Project,
    Screen,
    ServerEntity,
)
from omero_client.web.requests import RequestSender

logger = logging.getLogger(__name__)

ITEM_URL = "{host}/webclient/?show={label}-{entity_id}"
LOGOUT_URL = "{host}/webclient/logout/"
ORPHANED_IMAGES_URL = "{host}/webclient/api/images/?orphaned=true"
WEBCLIENT_URL = "{host}/webclient/"
PING_URL = "{host}/webclient/keepalive_ping/"
ANNOTATIONS_URL = "{host}/webclient/api/annotations/?{label}={entity_id}"
SEARCH_URL = "{host}/webclient/load_searching/form/?{query}"

_ITEM_LABELS: dict[type[ServerEntity], str] = {
    Image: "image",
    Dataset: "dataset",
    Project: "project",
    Screen: "screen",
    Plate: "plate",
    PlateAcquisition: "run",
}

_ICONS: dict[type[ServerEntity], str] = {
    Image: "/static/webclient/image/image16.png",
    Screen: "/static/webclient/image/folder_screen16.png",
    Plate: "/static/webclient/image/folder_plate16.png",
    PlateAcquisition: "/static/webclient/image/run16.png",
}


def _item_label(entity_type: type[ServerEntity]) -> str:
    for known_type, label in _ITEM_LABELS.items():
        if issubclass(entity_type, known_type):
            return label
    raise ValueError(f"{entity_type.__name__} has no webclient page")


class WebclientApi:
    """Webclient endpoint of one server."""

    def __init__(self, host: str, sender: RequestSender) -> None:
        self.host = host
        self._sender = sender

    def __str__(self) -> str:
        return f"Webclient API of {self.host}"

    def get_item_uri(self, entity: ServerEntity) -> str:
        """Return the webclient link showing ``entity``.

        Raises:
            ValueError: If the entity kind has no webclient page (wells).
        """
        return ITEM_URL.format(
            host=self.host, label=_item_label(type(entity)), entity_id=entity.id
        )

    async def ping(self) -> bool:
        """Keep the session alive; False if the server did not answer 200."""
        return await self._sender.is_link_reachable(PING_URL.format(host=self.host))

    async def logout(self, token: str) -> bool:
        """End the server session. Best effort: failures are only logged."""
        response = await self._sender.post_form(
            LOGOUT_URL.format(host=self.host),
            {"csrfmiddlewaretoken": token},
            WEBCLIENT_URL.format(host=self.host),
            token,
        )
        return response is not None

    async def get_orphaned_image_ids(self) -> list[int]:
        images = await self._sender.get_json_list(
            ORPHANED_IMAGES_URL.format(host=self.host), "images"
        )
        ids = []
        for image in images:
            try:
                ids.append(int(image["id"]))
            except (KeyError, TypeError, ValueError):
                logger.warning("Orphaned image without ID skipped: %s", image)
        return ids

    async def get_annotations(self, entity: ServerEntity) -> AnnotationGroup | None:
        """Return the annotations attached to ``entity``, grouped by kind."""
        uri = ANNOTATIONS_URL.format(
            host=self.host,
            label=_item_label(type(entity)),
            entity_id=entity.id,
        )
        data = await self._sender.get_json(uri)
        if data is None:
            return None
        return AnnotationGroup.from_json(data)

    async def get_search_results(self, query: SearchQuery) -> list[SearchResult]:
        """Run a webclient search. Results are parsed from HTML on a best-effort basis."""
        parameters: list[tuple[str, str | int]] = [("query", query.query)]
        parameters.extend(("field", field) for field in query.fields)
        parameters.extend(("datatype", data_type) for data_type in query.data_types)
        parameters.extend(
            [
                ("searchGroup", query.group.id),
                ("ownedBy", query.owner.id),
                ("useAcquisitionDate", "false"),
                ("startdateinput", ""),
                ("enddateinput", ""),
                ("_", int(time.time() * 1000)),
            ]
        )
        html = await self._sender.get(
            SEARCH_URL.format(host=self.host, query=urlencode(parameters))
        )
        if html is None:
            return []
        return parse_search_results(html, self.host)

    def icon_uri(self, entity_type: type[ServerEntity]) -> str | None:
        """Return the icon link of ``entity_type``, or None if another endpoint owns it."""
        for known_type, path in _ICONS.items():
            if issubclass(entity_type, known_type):
                return f"{self.host}{path}"
        return None

    async def get_icon(self, entity_type: type[ServerEntity]) -> PILImage.Image | None:
        uri = self.icon_uri(entity_type)
        if uri is None:
            return None
        return await self._sender.get_image(uri)
