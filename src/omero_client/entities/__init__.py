"""Typed models of what an OMERO server exposes."""

from omero_client.entities.permissions import Group, Owner
from omero_client.entities.repository import PopulationState, RepositoryEntity
from omero_client.entities.server import OrphanedFolder, Server
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
from omero_client.entities.shapes import Shape, ShapeText, decode_shape

__all__ = [
    "Dataset",
    "Group",
    "Image",
    "OrphanedFolder",
    "Owner",
    "Plate",
    "PlateAcquisition",
    "PopulationState",
    "Project",
    "RepositoryEntity",
    "Screen",
    "Server",
    "ServerEntity",
    "Shape",
    "ShapeText",
    "Well",
    "decode_entities",
    "decode_entity",
    "decode_shape",
]
