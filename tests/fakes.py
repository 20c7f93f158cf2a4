"""Canned OMERO responses shared by the tests."""

from __future__ import annotations

from io import BytesIO
from typing import Any

import httpx
import numpy as np
import respx
import tifffile
from PIL import Image

HOST = "https://omero.test"
API_BASE = f"{HOST}/api/v0/"
TOKEN = "csrf-token-123"
OME = "http://www.openmicroscopy.org/Schemas/OME/2016-06#"

API_LINKS: dict[str, str] = {
    "url:experimenters": f"{API_BASE}m/experimenters/",
    "url:experimentergroups": f"{API_BASE}m/experimentergroups/",
    "url:projects": f"{API_BASE}m/projects/",
    "url:datasets": f"{API_BASE}m/datasets/",
    "url:images": f"{API_BASE}m/images/",
    "url:screens": f"{API_BASE}m/screens/",
    "url:plates": f"{API_BASE}m/plates/",
    "url:token": f"{API_BASE}token/",
    "url:servers": f"{API_BASE}servers/",
    "url:login": f"{API_BASE}login/",
    "url:schema": "https://www.openmicroscopy.org/Schemas/OME/2016-06",
}


def paginated(
    data: list[Any], limit: int = 200, total: int | None = None
) -> dict[str, Any]:
    """Body of one page of a JSON API list."""
    return {
        "data": data,
        "meta": {
            "offset": 0,
            "limit": limit,
            "totalCount": len(data) if total is None else total,
            "maxLimit": 500,
        },
    }


def image_json(image_id: int, name: str | None = None) -> dict[str, Any]:
    return {
        "@id": image_id,
        "@type": f"{OME}Image",
        "Name": name or f"image-{image_id}.tif",
        "Pixels": {
            "SizeX": 100,
            "SizeY": 80,
            "SizeC": 3,
            "Type": {"value": "uint8"},
        },
    }


def image_bytes(
    size: tuple[int, int] = (4, 4),
    color: tuple[int, int, int] = (255, 0, 0),
    image_format: str = "PNG",
) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format=image_format)
    return buffer.getvalue()


def plane_bytes(plane: np.ndarray) -> bytes:
    """Encode a 2D array as the TIFF the pixel buffer service returns."""
    buffer = BytesIO()
    tifffile.imwrite(buffer, plane)
    return buffer.getvalue()


LOGIN_BODY: dict[str, Any] = {
    "success": True,
    "eventContext": {
        "userId": 2,
        "userName": "ada",
        "sessionUuid": "session-uuid",
        "groupId": 3,
        "groupName": "lab",
    },
}


def add_session_routes(router: respx.MockRouter, *, ping_status: int = 200) -> dict[str, respx.Route]:
    """Routes needed to log in, list groups and owners, ping and log out."""
    return {
        "login": router.post(API_LINKS["url:login"]).mock(
            return_value=httpx.Response(200, json=LOGIN_BODY)
        ),
        "groups": router.get(API_LINKS["url:experimentergroups"]).mock(
            return_value=httpx.Response(200, json=paginated([{"@id": 3, "Name": "lab"}]))
        ),
        "owners": router.get(API_LINKS["url:experimenters"]).mock(
            return_value=httpx.Response(
                200, json=paginated([{"@id": 2, "FirstName": "Ada", "UserName": "ada"}])
            )
        ),
        "projects": router.get(API_LINKS["url:projects"]).mock(
            return_value=httpx.Response(200, json=paginated([]))
        ),
        "ping": router.get(f"{HOST}/webclient/keepalive_ping/").mock(
            return_value=httpx.Response(ping_status)
        ),
        "logout": router.post(f"{HOST}/webclient/logout/").mock(
            return_value=httpx.Response(200)
        ),
    }
