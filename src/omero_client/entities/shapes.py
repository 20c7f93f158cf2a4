"""ROI shapes exchanged with the JSON API and the iviewer endpoint.

Shapes are read from ``/api/v0/m/rois/`` (nested in their ROI) and
written back through ``/iviewer/persist_rois/``. Their ``Text`` field
carries a four-field description of the local object they came from::

    kind:classification:objectId:parentId

e.g. ``Annotation:Tumor&Grade 2:6f1c...:NoParent``. Colons inside the
classification are stored as ``&``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from omero_client.entities.server_entities import OME_SCHEMA

logger = logging.getLogger(__name__)

DEFAULT_KIND = "Annotation"
NO_CLASS = "NoClass"
NO_PARENT = "NoParent"
NO_OLD_ID = "-1:-1"

# Fully transparent fill used for shapes created by this client
TRANSPARENT_FILL = -256


@dataclass(frozen=True)
class ShapeText:
    """Parsed form of a shape's ``Text`` field."""

    kind: str = DEFAULT_KIND
    classification: str = NO_CLASS
    object_id: str = ""
    parent_id: str = NO_PARENT

    @classmethod
    def parse(cls, text: str | None) -> ShapeText:
        """Read the four colon-separated fields; blank or missing ones get defaults."""
        defaults = (DEFAULT_KIND, NO_CLASS, "", NO_PARENT)
        tokens = text.split(":") if text else []
        fields = [
            tokens[i] if i < len(tokens) and tokens[i] else defaults[i]
            for i in range(len(defaults))
        ]
        return cls(*fields)

    @classmethod
    def create(
        cls,
        *,
        kind: str = DEFAULT_KIND,
        classes: list[str] | None = None,
        object_id: str | None = None,
        parent_id: str | None = None,
    ) -> ShapeText:
        """Describe a local object, generating a random object ID if none is given."""
        classification = (
            "&".join(name.replace(":", "&") for name in classes) if classes else NO_CLASS
        )
        return cls(
            kind=kind,
            classification=classification,
            object_id=object_id or str(uuid.uuid4()),
            parent_id=parent_id or NO_PARENT,
        )

    @property
    def classes(self) -> list[str]:
        if self.classification == NO_CLASS:
            return []
        return self.classification.split("&")

    @property
    def has_parent(self) -> bool:
        return self.parent_id != NO_PARENT

    def __str__(self) -> str:
        return f"{self.kind}:{self.classification}:{self.object_id}:{self.parent_id}"


def _alias(name: str, alternate: str | None = None) -> dict[str, Any]:
    choices = (name, alternate) if alternate else (name,)
    return {
        "validation_alias": AliasChoices(*choices),
        "serialization_alias": name,
    }


class Shape(BaseModel):
    """Base of every ROI shape."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    TYPE_NAME: ClassVar[str] = ""

    id: int = Field(default=0, **_alias("@id"))
    c: int | None = Field(default=None, **_alias("TheC"))
    z: int = Field(default=0, **_alias("TheZ"))
    t: int = Field(default=0, **_alias("TheT"))
    text: str | None = Field(default=None, **_alias("Text", "text"))
    locked: bool | None = Field(default=None, **_alias("Locked", "locked"))
    fill_color: int | None = Field(default=None, **_alias("FillColor", "fillColor"))
    stroke_color: int | None = Field(
        default=None, **_alias("StrokeColor", "strokeColor")
    )
    old_id: str = Field(default=NO_OLD_ID, **_alias("oldId"))

    @property
    def shape_text(self) -> ShapeText:
        return ShapeText.parse(self.text)

    @property
    def roi_id(self) -> int:
        """ID of the ROI this shape was read from, -1 for a new shape."""
        return int(self.old_id.split(":")[0])

    def tag_with_roi(self, roi_id: int) -> None:
        """Record the owning ROI so the shape can later be deleted by reference."""
        self.old_id = f"{roi_id}:{self.id}"

    def to_json(self) -> dict[str, Any]:
        """Serialize the shape the way the iviewer endpoint expects it."""
        return {
            "@type": OME_SCHEMA + self.TYPE_NAME,
            **self.model_dump(by_alias=True, exclude_none=True),
        }

    def __str__(self) -> str:
        return f"{self.TYPE_NAME} {self.old_id} ({self.text})"


def parse_points(points: str) -> list[tuple[float, float]]:
    """Parse ``"x,y x,y ..."``, ignoring tokens without two coordinates.

    Raises:
        ValueError: If a coordinate is not a number.
    """
    parsed = []
    for token in points.split():
        coordinates = token.split(",")
        if len(coordinates) > 1:
            parsed.append((float(coordinates[0]), float(coordinates[1])))
    return parsed


class Rectangle(Shape):
    TYPE_NAME: ClassVar[str] = "Rectangle"

    x: float = Field(default=0, alias="X")
    y: float = Field(default=0, alias="Y")
    width: float = Field(default=0, alias="Width")
    height: float = Field(default=0, alias="Height")


class Ellipse(Shape):
    TYPE_NAME: ClassVar[str] = "Ellipse"

    x: float = Field(default=0, alias="X")
    y: float = Field(default=0, alias="Y")
    radius_x: float = Field(default=0, alias="RadiusX")
    radius_y: float = Field(default=0, alias="RadiusY")


class Line(Shape):
    TYPE_NAME: ClassVar[str] = "Line"

    x1: float = Field(default=0, alias="X1")
    y1: float = Field(default=0, alias="Y1")
    x2: float = Field(default=0, alias="X2")
    y2: float = Field(default=0, alias="Y2")


class Polygon(Shape):
    TYPE_NAME: ClassVar[str] = "Polygon"

    points: str = Field(default="", alias="Points")

    @property
    def point_list(self) -> list[tuple[float, float]]:
        return parse_points(self.points)


class Polyline(Polygon):
    TYPE_NAME: ClassVar[str] = "Polyline"


class Point(Shape):
    TYPE_NAME: ClassVar[str] = "Point"

    x: float = Field(default=0, alias="X")
    y: float = Field(default=0, alias="Y")


class Label(Shape):
    TYPE_NAME: ClassVar[str] = "Label"

    x: float = Field(default=0, alias="X")
    y: float = Field(default=0, alias="Y")


_SHAPE_TYPES: dict[str, type[Shape]] = {
    cls.TYPE_NAME.lower(): cls
    for cls in (Rectangle, Ellipse, Line, Polygon, Polyline, Point, Label)
}


def decode_shape(data: Any) -> Shape | None:
    """Turn a shape JSON node into a typed Shape.

    Returns:
        The shape, or None if the node is malformed or of an unknown type.
    """
    if not isinstance(data, dict) or not isinstance(data.get("@type"), str):
        logger.error("Cannot decode shape from %r", data)
        return None

    tag = data["@type"].lower()
    schema = OME_SCHEMA.lower()
    if tag.startswith(schema):
        tag = tag[len(schema) :]
    shape_class = _SHAPE_TYPES.get(tag)
    if shape_class is None:
        logger.warning("Unsupported shape type %s skipped", data["@type"])
        return None

    try:
        shape = shape_class.model_validate(data)
        if isinstance(shape, Polygon):
            parse_points(shape.points)
    except (ValidationError, ValueError) as e:
        logger.error("Invalid %s JSON: %s", shape_class.TYPE_NAME, e)
        return None
    return shape


def decode_rois(rois: list[Any]) -> list[Shape]:
    """Flatten ROI containers into their shapes, tagging each with its ROI ID."""
    shapes: list[Shape] = []
    for roi in rois:
        if not isinstance(roi, dict):
            logger.error("Cannot read ROI from %r", roi)
            continue
        roi_id = roi.get("@id")
        roi_shapes = roi.get("shapes")
        if not isinstance(roi_id, int) or not isinstance(roi_shapes, list):
            logger.error("Cannot read shapes of ROI %r", roi_id)
            continue
        for shape_json in roi_shapes:
            shape = decode_shape(shape_json)
            if shape is not None:
                shape.tag_with_roi(roi_id)
                shapes.append(shape)
    return shapes
