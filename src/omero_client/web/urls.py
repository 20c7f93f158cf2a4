"""URI helpers shared by every endpoint client."""

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

from omero_client.exceptions import OmeroError

# Query parameters or path segments that carry an entity ID in webclient links,
# e.g. /webclient/?show=image-42 or /webclient/img_detail/42/
_ID_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "project": (re.compile(r"project-(\d+)"),),
    "dataset": (re.compile(r"dataset-(\d+)"), re.compile(r"/datasets/(\d+)")),
    "image": (
        re.compile(r"image-(\d+)"),
        re.compile(r"/img_detail/(\d+)"),
        re.compile(r"images=(\d+)"),
        re.compile(r"/images/(\d+)"),
    ),
    "screen": (re.compile(r"screen-(\d+)"),),
    "plate": (re.compile(r"plate-(\d+)"),),
}


def normalize_server_uri(uri: str) -> str:
    """Reduce a URI to ``scheme://authority``.

    Two links pointing at different pages of the same server map to the
    same value, which is what the connection registry keys on.

    Raises:
        OmeroError: If the URI has no scheme or no host.
    """
    parts = urlsplit(uri.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise OmeroError("Not an http(s) server URI", uri)
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))


def add_query_parameter(uri: str, parameter: str) -> str:
    """Append ``parameter`` with ``?`` or ``&`` depending on the existing query."""
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{parameter}"


def parse_entity_id(uri: str) -> tuple[str, int] | None:
    """Return the (entity type, id) a webclient or API link refers to.

    Returns:
        A tuple such as ``("image", 42)``, or None if no known pattern matches.
    """
    for entity_type, patterns in _ID_PATTERNS.items():
        for pattern in patterns:
            match = pattern.search(uri)
            if match:
                return entity_type, int(match.group(1))
    return None


def with_port(uri: str, port: int) -> str:
    """Return the server URI with its port replaced."""
    parts = urlsplit(uri)
    host = parts.hostname or ""
    return urlunsplit((parts.scheme, f"{host}:{port}", parts.path, parts.query, ""))
