"""HTTP plumbing: fail-soft request sender and URI helpers."""

from omero_client.web.requests import RequestSender
from omero_client.web.urls import (
    add_query_parameter,
    normalize_server_uri,
    parse_entity_id,
)

__all__ = [
    "RequestSender",
    "add_query_parameter",
    "normalize_server_uri",
    "parse_entity_id",
]
