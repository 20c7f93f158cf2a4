"""Client of the OMERO JSON API (``/api/v0/...``).

Endpoint URLs are never hard-coded: at creation the API root is read,
the latest version's link map is followed, and every later request is
built from one of its named links (``url:projects``, ``url:token``...).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from omero_client.entities.login import LoginResponse, LoginStatus
from omero_client.entities.permissions import Group, Owner
from omero_client.entities.server_info import ApiRoot, CsrfToken, OmeroServerList
from omero_client.entities.shapes import Shape, decode_rois
from omero_client.exceptions import DiscoveryError
from omero_client.web.requests import RequestSender

logger = logging.getLogger(__name__)

API_URL = "{host}/api/"
PROJECTS_URL = "{base}?childCount=true"
ORPHANED_DATASETS_URL = "{base}?childCount=true&orphaned=true"
DATASETS_URL = "{base}{project_id}/datasets/?childCount=true"
IMAGES_URL = "{base}{dataset_id}/images/?childCount=true"
SCREENS_URL = "{base}?childCount=true"
PLATES_URL = "{base}{screen_id}/plates/"
ORPHANED_PLATES_URL = "{base}?orphaned=true"
PLATE_ACQUISITIONS_URL = "{host}/api/v0/m/plates/{plate_id}/plateacquisitions/"
PLATE_WELLS_URL = "{host}/api/v0/m/plates/{plate_id}/wells/"
WELLS_URL = (
    "{host}/api/v0/m/plateacquisitions/{acquisition_id}"
    "/wellsampleindex/{well_sample_index}/wells/"
)
ROIS_URL = "{host}/api/v0/m/rois/?image={image_id}"

OWNERS_LINK = "url:experimenters"
GROUPS_LINK = "url:experimentergroups"
PROJECTS_LINK = "url:projects"
DATASETS_LINK = "url:datasets"
IMAGES_LINK = "url:images"
SCREENS_LINK = "url:screens"
PLATES_LINK = "url:plates"
TOKEN_LINK = "url:token"
SERVERS_LINK = "url:servers"
LOGIN_LINK = "url:login"

REQUIRED_LINKS = (
    OWNERS_LINK,
    GROUPS_LINK,
    PROJECTS_LINK,
    DATASETS_LINK,
    IMAGES_LINK,
    SCREENS_LINK,
    PLATES_LINK,
    TOKEN_LINK,
    SERVERS_LINK,
    LOGIN_LINK,
)


class JsonApi:
    """Metadata endpoint of one server.

    Entity lists are returned as raw JSON nodes; the API handler decodes
    them so that it can bind each entity to itself.

    Usage:
        json_api = await JsonApi.create("https://omero.example.org", sender)
        projects = await json_api.get_projects()
    """

    def __init__(
        self,
        host: str,
        sender: RequestSender,
        urls: dict[str, str],
        server_id: int,
        server_port: int,
        token: str,
    ) -> None:
        self.host = host
        self._sender = sender
        self._urls = urls
        self.server_id = server_id
        self.server_port = server_port
        self.token = token

    def __str__(self) -> str:
        return f"JSON API of {self.host}"

    @classmethod
    async def create(cls, host: str, sender: RequestSender) -> JsonApi:
        """Discover the server's links, server ID and CSRF token.

        Raises:
            DiscoveryError: If any discovery step fails.
        """
        api_uri = API_URL.format(host=host)
        root = await sender.get_and_convert(api_uri, ApiRoot)
        if root is None:
            raise DiscoveryError("Cannot read the API versions", api_uri)

        version_uri = root.latest_version_url
        links = await sender.get_json(version_uri)
        if not isinstance(links, dict):
            raise DiscoveryError("Cannot read the API links", version_uri)
        urls = {key: value for key, value in links.items() if isinstance(value, str)}
        for link_name in REQUIRED_LINKS:
            if link_name not in urls:
                raise DiscoveryError("Missing API link", version_uri, link_name=link_name)

        servers, token = await asyncio.gather(
            sender.get_and_convert(urls[SERVERS_LINK], OmeroServerList),
            sender.get_and_convert(urls[TOKEN_LINK], CsrfToken),
        )
        if servers is None:
            raise DiscoveryError(
                "Cannot read the OMERO server list",
                urls[SERVERS_LINK],
                link_name=SERVERS_LINK,
            )
        if token is None:
            raise DiscoveryError(
                "Cannot read the CSRF token", urls[TOKEN_LINK], link_name=TOKEN_LINK
            )

        return cls(
            host=host,
            sender=sender,
            urls=urls,
            server_id=servers.server.id,
            server_port=servers.server.port,
            token=token.data,
        )

    @property
    def urls(self) -> dict[str, str]:
        return dict(self._urls)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str) -> LoginResponse:
        """Log in with the given credentials.

        The password is url-encoded straight into a byte buffer that the
        request sender overwrites once the request has been sent.
        """
        login_uri = self._urls[LOGIN_LINK]
        body = bytearray(
            f"server={self.server_id}&username={quote(username, safe='')}&password=",
            "utf-8",
        )
        body.extend(quote(password, safe="").encode("utf-8"))

        response = await self._sender.post_bytes(login_uri, body, login_uri, self.token)
        if response is None:
            return LoginResponse.unsuccessful(LoginStatus.FAILED)
        return LoginResponse.from_server_response(response)

    async def can_skip_authentication(self) -> bool:
        """True if projects can be listed without being logged in."""
        return await self._sender.is_link_reachable(self._urls[PROJECTS_LINK])

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def get_owners(self) -> list[Owner]:
        return self._validate_all(
            await self._sender.get_paginated(self._urls[OWNERS_LINK]), Owner
        )

    async def get_groups(self) -> list[Group]:
        """Return every group with its experimenters filled in."""
        groups = self._validate_all(
            await self._sender.get_paginated(self._urls[GROUPS_LINK]), Group
        )
        members = await asyncio.gather(
            *(self._get_group_members(group) for group in groups)
        )
        for group, owners in zip(groups, members, strict=True):
            group.owners = owners
        return groups

    async def _get_group_members(self, group: Group) -> list[Owner]:
        if group.experimenters_url is None:
            return []
        return self._validate_all(
            await self._sender.get_paginated(group.experimenters_url), Owner
        )

    @staticmethod
    def _validate_all(items: list[dict[str, Any]], model: type[Any]) -> list[Any]:
        validated = []
        for item in items:
            try:
                validated.append(model.model_validate(item))
            except ValidationError as e:
                logger.error("Invalid %s JSON: %s", model.__name__, e)
        return validated

    # ------------------------------------------------------------------
    # Entities (raw JSON nodes)
    # ------------------------------------------------------------------

    async def get_projects(self) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            PROJECTS_URL.format(base=self._urls[PROJECTS_LINK])
        )

    async def get_orphaned_datasets(self) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            ORPHANED_DATASETS_URL.format(base=self._urls[DATASETS_LINK])
        )

    async def get_datasets(self, project_id: int) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            DATASETS_URL.format(base=self._urls[PROJECTS_LINK], project_id=project_id)
        )

    async def get_images(self, dataset_id: int) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            IMAGES_URL.format(base=self._urls[DATASETS_LINK], dataset_id=dataset_id)
        )

    async def get_image(self, image_id: int) -> dict[str, Any] | None:
        response = await self._sender.get_json(f"{self._urls[IMAGES_LINK]}{image_id}")
        if not isinstance(response, dict) or not isinstance(response.get("data"), dict):
            if response is not None:
                logger.error("Image %d response has no data object", image_id)
            return None
        return response["data"]

    async def get_screens(self) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            SCREENS_URL.format(base=self._urls[SCREENS_LINK])
        )

    async def get_orphaned_plates(self) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            ORPHANED_PLATES_URL.format(base=self._urls[PLATES_LINK])
        )

    async def get_plates(self, screen_id: int) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            PLATES_URL.format(base=self._urls[SCREENS_LINK], screen_id=screen_id)
        )

    async def get_plate_acquisitions(self, plate_id: int) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            PLATE_ACQUISITIONS_URL.format(host=self.host, plate_id=plate_id)
        )

    async def get_wells_from_plate(self, plate_id: int) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            PLATE_WELLS_URL.format(host=self.host, plate_id=plate_id)
        )

    async def get_wells_from_plate_acquisition(
        self, acquisition_id: int, well_sample_index: int
    ) -> list[dict[str, Any]]:
        return await self._sender.get_paginated(
            WELLS_URL.format(
                host=self.host,
                acquisition_id=acquisition_id,
                well_sample_index=well_sample_index,
            )
        )

    # ------------------------------------------------------------------
    # ROIs
    # ------------------------------------------------------------------

    async def get_rois(self, image_id: int) -> list[Shape]:
        """Return every shape of every ROI of the image, tagged with its ROI ID."""
        rois = await self._sender.get_paginated(
            ROIS_URL.format(host=self.host, image_id=image_id)
        )
        return decode_rois(rois)
