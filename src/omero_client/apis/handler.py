"""Single entry point to every endpoint of one OMERO server.

ApisHandler owns the HTTP session of a connection, decodes the JSON API's
raw nodes into bound entities, caches thumbnails, icons and image
metadata, and publishes progress counters for long-running loads.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from PIL import Image as PILImage

from omero_client.apis.counters import ObservableCounter, ObservableFlag
from omero_client.apis.iviewer_api import IViewerApi
from omero_client.apis.json_api import JsonApi
from omero_client.apis.pixel_buffer_api import PixelBufferApi
from omero_client.apis.webclient_api import WebclientApi
from omero_client.apis.webgateway_api import WebGatewayApi
from omero_client.config import Settings, settings
from omero_client.entities.annotations import AnnotationGroup
from omero_client.entities.image_metadata import ImageMetadata, parse_image_metadata
from omero_client.entities.login import LoginResponse, LoginStatus
from omero_client.entities.permissions import Group, Owner
from omero_client.entities.repository import gather_in_batches
from omero_client.entities.search import SearchQuery, SearchResult
from omero_client.entities.server_entities import (
    Dataset,
    Image,
    Plate,
    PlateAcquisition,
    Project,
    Screen,
    ServerEntity,
    Well,
    decode_entities,
    decode_entity,
)
from omero_client.entities.shapes import Shape
from omero_client.exceptions import DecodeError, DiscoveryError
from omero_client.pixels.tiles import Tile, TileReader, TileRequest
from omero_client.utils.logging import set_correlation_context
from omero_client.web.requests import RequestSender

logger = logging.getLogger(__name__)


class ApisHandler:
    """Facade over the JSON, webclient, web gateway, iviewer and pixel buffer APIs.

    Create it with ``await ApisHandler.create(host)``; it returns None if
    the server's API could not be discovered. Caches are never evicted
    and concurrent misses on the same key may fetch twice.

    Usage:
        apis = await ApisHandler.create("https://omero.example.org")
        if apis is not None:
            projects = await apis.get_projects()
            await apis.close()
    """

    def __init__(
        self,
        host: str,
        sender: RequestSender,
        json_api: JsonApi,
        settings: Settings,
    ) -> None:
        self.host = host
        self.settings = settings
        self._sender = sender
        self._json_api = json_api
        self._webclient_api = WebclientApi(host, sender)
        self._webgateway_api = WebGatewayApi(host, sender)
        self._iviewer_api = IViewerApi(host, sender)
        self._pixel_buffer_api = PixelBufferApi(host, sender, settings.PIXEL_BUFFER_PORT)

        self._thumbnails: dict[tuple[int, int], PILImage.Image] = {}
        self._icons: dict[type[Any], PILImage.Image] = {}
        self._metadata: dict[int, ImageMetadata] = {}

        self.entities_loading = ObservableCounter("entities_loading")
        self.thumbnails_loading = ObservableCounter("thumbnails_loading")
        self.orphaned_images_loaded = ObservableCounter("orphaned_images_loaded")
        self.orphaned_images_total = ObservableCounter("orphaned_images_total")
        self.orphaned_images_loading = ObservableFlag("orphaned_images_loading")

    @classmethod
    async def create(
        cls, host: str, app_settings: Settings | None = None
    ) -> ApisHandler | None:
        """Discover the server's API and build a handler for it.

        Args:
            host: Normalized server URI (``scheme://authority``).
            app_settings: Settings to use; defaults to the global settings.

        Returns:
            The handler, or None if discovery failed. No partially built
            handler is ever returned.
        """
        app_settings = app_settings or settings
        sender = RequestSender(app_settings)
        try:
            json_api = await JsonApi.create(host, sender)
        except DiscoveryError as e:
            logger.error("Cannot create API handler of %s: %s", host, e)
            await sender.close()
            return None
        return cls(host, sender, json_api, app_settings)

    def __str__(self) -> str:
        return f"APIs handler of {self.host}"

    @property
    def token(self) -> str:
        """CSRF token sent with every state-changing request."""
        return self._json_api.token

    @property
    def server_id(self) -> int:
        return self._json_api.server_id

    @property
    def server_port(self) -> int:
        return self._json_api.server_port

    async def close(self) -> None:
        await self._sender.close()

    @asynccontextmanager
    async def _loading_entities(self) -> AsyncIterator[None]:
        self.entities_loading.increment()
        try:
            yield
        finally:
            self.entities_loading.decrement()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(
        self, username: str | None = None, password: str | None = None
    ) -> LoginResponse:
        """Log in; CANCELED if no credentials were given."""
        if username is None or password is None:
            return LoginResponse.unsuccessful(LoginStatus.CANCELED)
        return await self._json_api.login(username, password)

    async def logout(self) -> bool:
        return await self._webclient_api.logout(self.token)

    async def ping(self) -> bool:
        return await self._webclient_api.ping()

    async def can_skip_authentication(self) -> bool:
        return await self._json_api.can_skip_authentication()

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def get_groups(self) -> list[Group]:
        async with self._loading_entities():
            return await self._json_api.get_groups()

    async def get_owners(self) -> list[Owner]:
        async with self._loading_entities():
            return await self._json_api.get_owners()

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def get_projects(self) -> list[Project]:
        async with self._loading_entities():
            return decode_entities(await self._json_api.get_projects(), Project, self)

    async def get_orphaned_datasets(self) -> list[Dataset]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_orphaned_datasets(), Dataset, self
            )

    async def get_datasets(self, project_id: int) -> list[Dataset]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_datasets(project_id), Dataset, self
            )

    async def get_images(self, dataset_id: int) -> list[Image]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_images(dataset_id), Image, self
            )

    async def get_image(self, image_id: int) -> Image | None:
        async with self._loading_entities():
            data = await self._json_api.get_image(image_id)
        if data is None:
            return None
        image = decode_entity(data, self)
        if not isinstance(image, Image):
            logger.error("Entity %d is not an image: %s", image_id, image)
            return None
        return image

    async def get_screens(self) -> list[Screen]:
        async with self._loading_entities():
            return decode_entities(await self._json_api.get_screens(), Screen, self)

    async def get_orphaned_plates(self) -> list[Plate]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_orphaned_plates(), Plate, self
            )

    async def get_plates(self, screen_id: int) -> list[Plate]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_plates(screen_id), Plate, self
            )

    async def get_plate_acquisitions(self, plate_id: int) -> list[PlateAcquisition]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_plate_acquisitions(plate_id),
                PlateAcquisition,
                self,
            )

    async def get_wells_from_plate(self, plate_id: int) -> list[Well]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_wells_from_plate(plate_id), Well, self
            )

    async def get_wells_from_plate_acquisition(
        self, acquisition_id: int, well_sample_index: int
    ) -> list[Well]:
        async with self._loading_entities():
            return decode_entities(
                await self._json_api.get_wells_from_plate_acquisition(
                    acquisition_id, well_sample_index
                ),
                Well,
                self,
            )

    async def populate_images(self, image_ids: list[int], sink: list[Any]) -> None:
        """Fetch the images of ``image_ids`` into ``sink``, one batch at a time."""
        await gather_in_batches(
            image_ids,
            self.get_image,
            sink,
            self.settings.ORPHANED_IMAGES_BATCH_SIZE,
        )

    async def get_orphaned_image_ids(self) -> list[int]:
        async with self._loading_entities():
            return await self._webclient_api.get_orphaned_image_ids()

    async def get_number_of_orphaned_images(self) -> int:
        return len(await self.get_orphaned_image_ids())

    async def populate_orphaned_images_into_list(self, sink: list[Any]) -> None:
        """Fetch every orphaned image into ``sink``, in batches.

        ``orphaned_images_total`` is set once the IDs are known, and
        ``orphaned_images_loaded`` advances after each batch (16, 32, 35
        for 35 images and batches of 16). ``orphaned_images_loading`` is
        set for the whole duration.
        """
        self.orphaned_images_loading.set(True)
        self.orphaned_images_loaded.set(0)
        try:
            image_ids = await self.get_orphaned_image_ids()
            self.orphaned_images_total.set(len(image_ids))
            await gather_in_batches(
                image_ids,
                self.get_image,
                sink,
                self.settings.ORPHANED_IMAGES_BATCH_SIZE,
                on_batch=self.orphaned_images_loaded.set,
            )
        finally:
            self.orphaned_images_loading.set(False)

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def get_item_uri(self, entity: ServerEntity) -> str:
        """Webclient link of ``entity``.

        Raises:
            ValueError: If the entity kind has no webclient page.
        """
        return self._webclient_api.get_item_uri(entity)

    async def get_images_uri_of_dataset(self, dataset_id: int) -> list[str]:
        return [self.get_item_uri(image) for image in await self.get_images(dataset_id)]

    async def get_images_uri_of_project(self, project_id: int) -> list[str]:
        uris: list[str] = []
        for dataset in await self.get_datasets(project_id):
            uris.extend(await self.get_images_uri_of_dataset(dataset.id))
        return uris

    # ------------------------------------------------------------------
    # Thumbnails and icons
    # ------------------------------------------------------------------

    async def get_thumbnail(
        self, image_id: int, size: int | None = None
    ) -> PILImage.Image | None:
        size = size or self.settings.THUMBNAIL_SIZE
        key = (image_id, size)
        if key in self._thumbnails:
            return self._thumbnails[key]

        self.thumbnails_loading.increment()
        try:
            thumbnail = await self._webgateway_api.get_thumbnail(image_id, size)
        finally:
            self.thumbnails_loading.decrement()
        if thumbnail is not None:
            self._thumbnails[key] = thumbnail
        return thumbnail

    async def get_icon(self, entity_type: type[Any]) -> PILImage.Image | None:
        """Tree icon of an entity class (Project, Image, OrphanedFolder...)."""
        if entity_type in self._icons:
            return self._icons[entity_type]

        if self._webgateway_api.icon_uri(entity_type) is not None:
            icon = await self._webgateway_api.get_icon(entity_type)
        elif self._webclient_api.icon_uri(entity_type) is not None:
            icon = await self._webclient_api.get_icon(entity_type)
        else:
            logger.warning("No icon for %s", entity_type.__name__)
            return None

        if icon is not None:
            self._icons[entity_type] = icon
        return icon

    # ------------------------------------------------------------------
    # Pixels
    # ------------------------------------------------------------------

    async def get_image_metadata(self, image_id: int) -> ImageMetadata | None:
        if image_id in self._metadata:
            return self._metadata[image_id]

        set_correlation_context(image_id=image_id)
        data = await self._webgateway_api.get_image_data(image_id)
        if data is None:
            return None
        try:
            metadata = parse_image_metadata(image_id, data)
        except DecodeError as e:
            logger.error("Cannot read metadata of image %d: %s", image_id, e)
            return None
        self._metadata[image_id] = metadata
        return metadata

    async def create_tile_reader(self, image_id: int) -> TileReader | None:
        """Reader of an image, or None if no pixel source can serve it.

        RGB images are rendered by the web gateway. Other images need the
        pixel buffer microservice to be reachable and to support their
        sample type.
        """
        metadata = await self.get_image_metadata(image_id)
        if metadata is None:
            return None
        if not self._webgateway_api.can_read(metadata):
            if not self._pixel_buffer_api.can_read(metadata):
                logger.error(
                    "Image %d has %d %s channel(s), which no pixel source can read",
                    image_id,
                    metadata.num_channels,
                    metadata.pixel_type.value,
                )
                return None
            if not await self._pixel_buffer_api.is_available():
                logger.error(
                    "Image %d needs the pixel buffer service, which %s does not provide",
                    image_id,
                    self._pixel_buffer_api.host,
                )
                return None
        return TileReader(
            metadata,
            self._webgateway_api,
            self._pixel_buffer_api,
            quality=self.settings.JPEG_QUALITY,
            allow_smooth_interpolation=self.settings.ALLOW_SMOOTH_INTERPOLATION,
        )

    async def read_tile(self, image_id: int, request: TileRequest) -> Tile | None:
        """Read one tile of an image; see TileReader.read_tile.

        Raises:
            ValueError: If the request level does not exist for this image.
        """
        reader = await self.create_tile_reader(image_id)
        if reader is None:
            return None
        set_correlation_context(image_id=image_id)
        return await reader.read_tile(request)

    # ------------------------------------------------------------------
    # ROIs, annotations and search
    # ------------------------------------------------------------------

    async def get_rois(self, image_id: int) -> list[Shape]:
        return await self._json_api.get_rois(image_id)

    async def write_rois(
        self,
        image_id: int,
        shapes: list[Shape],
        remove_existing: bool = True,
    ) -> bool:
        """Add ``shapes`` to an image, optionally replacing its current ones.

        Replacing is done with a single request adding the new shapes and
        removing the existing ones.
        """
        existing = await self.get_rois(image_id) if remove_existing else []
        return await self._iviewer_api.write_rois(image_id, shapes, existing, self.token)

    async def get_annotations(self, entity: ServerEntity) -> AnnotationGroup | None:
        return await self._webclient_api.get_annotations(entity)

    async def get_search_results(self, query: SearchQuery) -> list[SearchResult]:
        return await self._webclient_api.get_search_results(query)
