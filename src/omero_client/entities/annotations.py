"""Annotations (tags, key-value maps, files, comments, ratings) of an entity.

They come from the webclient endpoint, which returns the annotations and
the experimenters they reference side by side::

    {"annotations": [{"class": "TagAnnotationI", "owner": {"id": 2}, ...}],
     "experimenters": [{"id": 2, "firstName": "Ada", "lastName": "L"}]}
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
)

logger = logging.getLogger(__name__)

MAX_RATING = 5


class Experimenter(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")

    @property
    def full_name(self) -> str:
        return " ".join(name for name in (self.first_name, self.last_name) if name)


class _IdReference(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int


class _Link(BaseModel):
    model_config = ConfigDict(extra="ignore")

    owner: _IdReference | None = None


class Annotation(BaseModel):
    """Base of every annotation kind.

    ``owner`` and ``adder`` are resolved against the experimenters list
    once the whole response has been read.
    """

    model_config = ConfigDict(extra="ignore")

    CLASS_NAMES: ClassVar[tuple[str, ...]] = ()

    id: int | None = None
    owner_ref: _IdReference | None = Field(default=None, alias="owner")
    link: _Link | None = None

    _owner: Experimenter | None = PrivateAttr(default=None)
    _adder: Experimenter | None = PrivateAttr(default=None)

    @property
    def owner(self) -> Experimenter | None:
        return self._owner

    @property
    def adder(self) -> Experimenter | None:
        """Experimenter who linked the annotation to the entity."""
        return self._adder

    @classmethod
    def matches(cls, class_name: str) -> bool:
        return class_name.lower() in cls.CLASS_NAMES

    def resolve_experimenters(self, experimenters: dict[int, Experimenter]) -> None:
        if self.owner_ref is not None:
            self._owner = experimenters.get(self.owner_ref.id)
        if self.link is not None and self.link.owner is not None:
            self._adder = experimenters.get(self.link.owner.id)


class TagAnnotation(Annotation):
    CLASS_NAMES: ClassVar[tuple[str, ...]] = ("tagannotationi", "tag")

    value: str | None = Field(default=None, alias="textValue")


class CommentAnnotation(Annotation):
    CLASS_NAMES: ClassVar[tuple[str, ...]] = ("commentannotationi", "comment")

    value: str | None = Field(default=None, alias="textValue")


class MapAnnotation(Annotation):
    CLASS_NAMES: ClassVar[tuple[str, ...]] = ("mapannotationi", "map")

    values: dict[str, str] = Field(default_factory=dict)

    @field_validator("values", mode="before")
    @classmethod
    def _pairs_to_dict(cls, value: Any) -> Any:
        # Newer servers send [[key, value], ...] instead of an object
        if isinstance(value, list):
            return {
                str(pair[0]): str(pair[1])
                for pair in value
                if isinstance(pair, list) and len(pair) == 2
            }
        return value


class FileAnnotation(Annotation):
    CLASS_NAMES: ClassVar[tuple[str, ...]] = ("fileannotationi", "file")

    file: dict[str, Any] = Field(default_factory=dict)

    @property
    def filename(self) -> str | None:
        name = self.file.get("name")
        return str(name) if name is not None else None

    @property
    def mimetype(self) -> str | None:
        mimetype = self.file.get("mimetype")
        return str(mimetype) if mimetype is not None else None

    @property
    def size(self) -> int | None:
        try:
            return int(self.file["size"])
        except (KeyError, TypeError, ValueError):
            return None


class RatingAnnotation(Annotation):
    CLASS_NAMES: ClassVar[tuple[str, ...]] = ("longannotationi", "rating")

    raw_value: int = Field(default=0, alias="longValue")

    @property
    def value(self) -> int:
        """Rating between 0 and MAX_RATING."""
        return min(self.raw_value, MAX_RATING)


_ANNOTATION_TYPES: tuple[type[Annotation], ...] = (
    TagAnnotation,
    MapAnnotation,
    FileAnnotation,
    CommentAnnotation,
    RatingAnnotation,
)


def decode_annotation(data: Any) -> Annotation | None:
    """Dispatch an annotation node on its ``class`` field."""
    if not isinstance(data, dict) or not isinstance(data.get("class"), str):
        logger.warning("Annotation without class attribute skipped")
        return None
    for annotation_type in _ANNOTATION_TYPES:
        if annotation_type.matches(data["class"]):
            try:
                return annotation_type.model_validate(data)
            except ValidationError as e:
                logger.error("Invalid %s JSON: %s", annotation_type.__name__, e)
                return None
    logger.warning("Unsupported annotation type %s skipped", data["class"])
    return None


class AnnotationGroup(BaseModel):
    """Annotations of one entity, grouped by kind."""

    annotations: dict[str, list[Annotation]] = Field(default_factory=dict)

    def of_type(self, annotation_type: type[Annotation]) -> list[Annotation]:
        return self.annotations.get(annotation_type.__name__, [])

    @classmethod
    def from_json(cls, data: Any) -> AnnotationGroup:
        """Build the group from a webclient annotations response.

        Malformed elements are logged and skipped.
        """
        if not isinstance(data, dict):
            logger.error("Cannot read annotations from %r", data)
            return cls()

        experimenters: dict[int, Experimenter] = {}
        for item in data.get("experimenters") or []:
            try:
                experimenter = Experimenter.model_validate(item)
            except ValidationError as e:
                logger.error("Invalid experimenter JSON: %s", e)
                continue
            experimenters[experimenter.id] = experimenter

        grouped: dict[str, list[Annotation]] = {}
        for item in data.get("annotations") or []:
            annotation = decode_annotation(item)
            if annotation is None:
                continue
            annotation.resolve_experimenters(experimenters)
            grouped.setdefault(type(annotation).__name__, []).append(annotation)
        return cls(annotations=grouped)
