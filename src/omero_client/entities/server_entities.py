"""Typed OMERO entities decoded from the JSON API.

A single decode boundary, ``decode_entity``, dispatches on the ``@type``
tag of a JSON node (either the full OME schema URL or the bare class
name, compared case-insensitively). Unknown tags are logged and dropped
so that newer servers exposing new kinds do not break browsing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from omero_client.entities.permissions import (
    Group,
    Owner,
    group_from_details,
    owner_from_details,
)
from omero_client.entities.repository import LazyChildren, PopulationState

if TYPE_CHECKING:
    from omero_client.apis.handler import ApisHandler

logger = logging.getLogger(__name__)

OME_SCHEMA = "http://www.openmicroscopy.org/Schemas/OME/2016-06#"

EntityT = TypeVar("EntityT", bound="ServerEntity")


class ServerEntity(BaseModel):
    """Base of every server-side entity. Equality is by (type, ID)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    TYPE_NAME: ClassVar[str] = ""

    id: int = Field(..., alias="@id")
    name: str | None = Field(default=None, alias="Name")
    owner: Owner = Field(default_factory=lambda: Owner.ALL_MEMBERS)
    group: Group = Field(default_factory=lambda: Group.ALL_GROUPS)

    # Back-reference used to fetch children; set by decode_entity
    _apis: Any = PrivateAttr(default=None)
    _children: LazyChildren[ServerEntity] = PrivateAttr(default_factory=LazyChildren)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServerEntity):
            return NotImplemented
        return type(self) is type(other) and self.id == other.id

    def __hash__(self) -> int:
        return hash((self.TYPE_NAME, self.id))

    def __str__(self) -> str:
        return f"{self.TYPE_NAME} {self.name} of ID {self.id}"

    def bind(self, apis: ApisHandler) -> None:
        """Give this entity the handler it uses to fetch its children."""
        self._apis = apis

    @property
    def label(self) -> str:
        return self.name or ""

    @property
    def has_children(self) -> bool:
        return False

    @property
    def children(self) -> list[ServerEntity]:
        return self._children.snapshot()

    @property
    def population_state(self) -> PopulationState:
        return self._children.state

    async def get_children(self) -> list[ServerEntity]:
        """Fetch the children on first call; later calls reuse them.

        Raises:
            RuntimeError: If the entity can have children but was never bound
                to an API handler.
        """
        if not self.has_children:
            return []
        if self._apis is None:
            raise RuntimeError(f"{self} is not bound to an API handler")
        return await self._children.populate(self._populate)

    async def _populate(self, sink: list[ServerEntity]) -> None:
        """Append this entity's children to ``sink``."""

    def is_filtered_by(
        self,
        group: Group | None,
        owner: Owner | None,
        name: str | None,
    ) -> bool:
        """Return True if this entity passes the group, owner and name filters.

        A None or sentinel group/owner matches everything; the name filter
        is a case-insensitive substring test.
        """
        return (
            (group is None or group == Group.ALL_GROUPS or group == self.group)
            and (owner is None or owner == Owner.ALL_MEMBERS or owner == self.owner)
            and (not name or name.lower() in (self.name or "").lower())
        )


class _Container(ServerEntity):
    """Entity whose JSON advertises its number of children."""

    description: str | None = Field(default=None, alias="Description")
    child_count: int = Field(default=0, alias="omero:childCount")

    @property
    def label(self) -> str:
        return f"{self.name or ''} ({self.child_count})"

    @property
    def has_children(self) -> bool:
        return self.child_count > 0


class Project(_Container):
    TYPE_NAME: ClassVar[str] = "Project"

    async def _populate(self, sink: list[ServerEntity]) -> None:
        sink.extend(await self._apis.get_datasets(self.id))


class Dataset(_Container):
    TYPE_NAME: ClassVar[str] = "Dataset"

    async def _populate(self, sink: list[ServerEntity]) -> None:
        sink.extend(await self._apis.get_images(self.id))


class Screen(_Container):
    TYPE_NAME: ClassVar[str] = "Screen"

    async def _populate(self, sink: list[ServerEntity]) -> None:
        sink.extend(await self._apis.get_plates(self.id))


class Plate(ServerEntity):
    """A multi-well plate.

    Its children are the plate acquisitions followed by the images of
    well samples that belong to no acquisition.
    """

    TYPE_NAME: ClassVar[str] = "Plate"

    columns: int = Field(default=0, alias="Columns")
    rows: int = Field(default=0, alias="Rows")

    @property
    def has_children(self) -> bool:
        # Unknown until populated
        if self.population_state is PopulationState.POPULATED:
            return bool(self.children)
        return True

    async def _populate(self, sink: list[ServerEntity]) -> None:
        acquisitions = await self._apis.get_plate_acquisitions(self.id)
        for acquisition in acquisitions:
            acquisition.number_of_wells = self.columns * self.rows
        sink.extend(acquisitions)

        wells = await self._apis.get_wells_from_plate(self.id)
        image_ids = [
            image_id
            for well in wells
            for image_id in well.image_ids(with_plate_acquisition=False)
        ]
        await self._apis.populate_images(image_ids, sink)


class PlateAcquisition(ServerEntity):
    TYPE_NAME: ClassVar[str] = "PlateAcquisition"

    well_sample_indices: list[int] = Field(
        default_factory=list, alias="omero:wellsampleIndex"
    )
    start_time: int | None = Field(default=None, alias="StartTime")
    number_of_wells: int = 0

    @property
    def label(self) -> str:
        return f"{self.name or ''} ({self.number_of_wells})"

    @property
    def has_children(self) -> bool:
        return self.number_of_wells > 0

    @property
    def well_sample_index(self) -> int:
        """First well sample index of the acquisition (the server sends [min, max])."""
        if len(self.well_sample_indices) > 1:
            return self.well_sample_indices[0]
        return 0

    async def _populate(self, sink: list[ServerEntity]) -> None:
        wells = await self._apis.get_wells_from_plate_acquisition(
            self.id, self.well_sample_index
        )
        image_ids = [
            image_id
            for well in wells
            for image_id in well.image_ids(with_plate_acquisition=True)
        ]
        await self._apis.populate_images(image_ids, sink)


class _EntityReference(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int = Field(..., alias="@id")


class WellSample(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image: _EntityReference | None = Field(default=None, alias="Image")
    plate_acquisition: _EntityReference | None = Field(
        default=None, alias="PlateAcquisition"
    )


class Well(ServerEntity):
    """A plate well. Its images are reached through the plate or acquisition."""

    TYPE_NAME: ClassVar[str] = "Well"

    well_samples: list[WellSample] = Field(default_factory=list, alias="WellSamples")
    column: int = Field(default=0, alias="Column")
    row: int = Field(default=0, alias="Row")

    @property
    def label(self) -> str:
        return f"Column: {self.column}, Row: {self.row}"

    def image_ids(self, *, with_plate_acquisition: bool) -> list[int]:
        """IDs of the images of samples that do (or do not) belong to an acquisition."""
        return [
            sample.image.id
            for sample in self.well_samples
            if sample.image is not None
            and (sample.plate_acquisition is not None) == with_plate_acquisition
        ]


class PhysicalSize(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    symbol: str = Field(default="", alias="Symbol")
    value: float = Field(..., alias="Value")


class _PixelTypeReference(BaseModel):
    value: str


class PixelInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    size_x: int = Field(default=0, alias="SizeX")
    size_y: int = Field(default=0, alias="SizeY")
    size_z: int = Field(default=1, alias="SizeZ")
    size_c: int = Field(default=1, alias="SizeC")
    size_t: int = Field(default=1, alias="SizeT")
    physical_size_x: PhysicalSize | None = Field(default=None, alias="PhysicalSizeX")
    physical_size_y: PhysicalSize | None = Field(default=None, alias="PhysicalSizeY")
    physical_size_z: PhysicalSize | None = Field(default=None, alias="PhysicalSizeZ")
    type: _PixelTypeReference | None = Field(default=None, alias="Type")


class Image(ServerEntity):
    TYPE_NAME: ClassVar[str] = "Image"

    acquisition_date: int | None = Field(default=None, alias="AcquisitionDate")
    pixels: PixelInfo | None = Field(default=None, alias="Pixels")

    @property
    def pixel_type(self) -> str | None:
        if self.pixels is None or self.pixels.type is None:
            return None
        return self.pixels.type.value

    @property
    def is_rgb(self) -> bool:
        """Three uint8 channels, which the web gateway renders losslessly as RGB."""
        return (
            self.pixels is not None
            and self.pixel_type == "uint8"
            and self.pixels.size_c == 3
        )


_ENTITY_TYPES: dict[str, type[ServerEntity]] = {
    cls.TYPE_NAME.lower(): cls
    for cls in (Project, Dataset, Screen, Plate, PlateAcquisition, Well, Image)
}


def entity_class_for(type_tag: str) -> type[ServerEntity] | None:
    """Return the entity class of an ``@type`` tag, or None if unknown."""
    tag = type_tag.lower()
    schema = OME_SCHEMA.lower()
    if tag.startswith(schema):
        tag = tag[len(schema) :]
    return _ENTITY_TYPES.get(tag)


def decode_entity(data: Any, apis: ApisHandler | None = None) -> ServerEntity | None:
    """Turn a JSON node into a typed entity.

    Owner and group are read from ``omero:details`` when present and keep
    their sentinel values otherwise. Entities are bound to ``apis`` so
    they can populate their children later.

    Returns:
        The decoded entity, or None if the node is malformed or of an
        unknown type.
    """
    if not isinstance(data, dict):
        logger.error("Cannot decode entity from %r", data)
        return None

    type_tag = data.get("@type", data.get("class"))
    if not isinstance(type_tag, str):
        logger.warning("Entity without type tag skipped: %s", data.get("@id"))
        return None

    entity_class = entity_class_for(type_tag)
    if entity_class is None:
        logger.warning("Unknown entity type %s skipped", type_tag)
        return None

    try:
        entity = entity_class.model_validate(data)
    except ValidationError as e:
        logger.error("Invalid %s JSON: %s", entity_class.TYPE_NAME, e)
        return None

    details = data.get("omero:details")
    owner = owner_from_details(details)
    if owner is not None:
        entity.owner = owner
    group = group_from_details(details)
    if group is not None:
        entity.group = group

    if apis is not None:
        entity.bind(apis)
    return entity


def decode_entities(
    items: list[Any],
    entity_type: type[EntityT],
    apis: ApisHandler | None = None,
) -> list[EntityT]:
    """Decode every node of ``items``, keeping only those of ``entity_type``.

    One malformed element does not fail the whole list.
    """
    entities: list[EntityT] = []
    for item in items:
        entity = decode_entity(item, apis)
        if isinstance(entity, entity_type):
            entities.append(entity)
        elif entity is not None:
            logger.warning("Expected %s, got %s", entity_type.TYPE_NAME, entity)
    return entities
