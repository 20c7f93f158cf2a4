"""Fail-soft asynchronous HTTP layer.

Every public coroutine of RequestSender returns either a value or an
empty marker (None, False or an empty list). Transport errors, timeouts,
non-200 statuses and undecodable bodies are logged once and swallowed
here, so callers compose requests without exception handling.
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from aiolimiter import AsyncLimiter
from PIL import Image
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from omero_client.config import Settings, settings
from omero_client.web.urls import add_query_parameter

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Errors raised before the server saw the request; safe to retry for any method
_TRANSIENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _objects(values: list[Any]) -> list[dict[str, Any]]:
    """Keep the JSON objects of an array, dropping nulls and scalars."""
    return [value for value in values if isinstance(value, dict)]


@dataclass
class RequestSender:
    """HTTP session bound to one OMERO server.

    The underlying httpx client follows redirects and keeps the session
    cookie jar, which the server uses together with the CSRF token to
    authorize state-changing calls.

    Usage:
        sender = RequestSender()
        projects = await sender.get_paginated(f"{host}/api/v0/m/projects/")
        await sender.close()
    """

    settings: Settings = field(default_factory=lambda: settings)

    _client: httpx.AsyncClient = field(init=False, repr=False)
    _limiter: AsyncLimiter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize the HTTP client and rate limiter."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.REQUEST_TIMEOUT_SECONDS),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=self.settings.MAX_CONNECTIONS),
        )
        self._limiter = AsyncLimiter(
            max_rate=self.settings.MAX_REQUESTS_PER_SECOND,
            time_period=1,
        )

    @property
    def cookies(self) -> httpx.Cookies:
        """Session cookies currently held by the client."""
        return self._client.cookies

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _send(
        self, method: str, uri: str, **kwargs: Any
    ) -> httpx.Response:
        async for attempt in AsyncRetrying(
            wait=wait_random_exponential(min=0.1, max=2),
            stop=stop_after_attempt(self.settings.REQUEST_RETRIES + 1),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                async with self._limiter:
                    return await self._client.request(method, uri, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _request(
        self,
        method: str,
        uri: str,
        *,
        quiet: bool = False,
        **kwargs: Any,
    ) -> httpx.Response | None:
        """Send a request and return the response only if it has status 200."""
        log = logger.debug if quiet else logger.error
        try:
            response = await self._send(method, uri, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log("%s %s failed: %s", method, uri, e)
            return None

        if response.status_code != httpx.codes.OK:
            log("%s %s returned status %d", method, uri, response.status_code)
            return None
        return response

    # ------------------------------------------------------------------
    # GET
    # ------------------------------------------------------------------

    async def get(self, uri: str) -> str | None:
        """Return the body of ``uri`` as text."""
        response = await self._request("GET", uri)
        return response.text if response is not None else None

    async def get_bytes(self, uri: str) -> bytes | None:
        """Return the raw body of ``uri``."""
        response = await self._request("GET", uri)
        return response.content if response is not None else None

    async def get_json(self, uri: str) -> Any | None:
        """Return the body of ``uri`` decoded as JSON."""
        response = await self._request("GET", uri)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error("Response of %s is not valid JSON: %s", uri, e)
            return None

    async def get_and_convert(self, uri: str, model: type[ModelT]) -> ModelT | None:
        """Return the JSON body of ``uri`` validated against ``model``."""
        data = await self.get_json(uri)
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(
                "Response of %s does not match %s: %s", uri, model.__name__, e
            )
            return None

    async def get_json_list(self, uri: str, member: str) -> list[dict[str, Any]]:
        """Return the array stored under ``member`` of the JSON object at ``uri``."""
        data = await self.get_json(uri)
        if data is None:
            return []
        values = data.get(member) if isinstance(data, dict) else None
        if not isinstance(values, list):
            logger.error("Response of %s has no %r array", uri, member)
            return []
        return _objects(values)

    async def get_image(self, uri: str) -> Image.Image | None:
        """Return the body of ``uri`` decoded as an image."""
        content = await self.get_bytes(uri)
        if content is None:
            return None
        try:
            image = Image.open(io.BytesIO(content))
            image.load()
        except OSError as e:
            logger.error("Response of %s is not a readable image: %s", uri, e)
            return None
        return image

    async def get_paginated(self, uri: str) -> list[dict[str, Any]]:
        """Return the concatenated ``data`` arrays of every page of ``uri``.

        The first page reports ``meta.limit`` and ``meta.totalCount``; the
        remaining ``ceil((totalCount - limit) / limit)`` pages are requested
        concurrently with increasing ``offset`` values. Elements of the
        first page come first, in server order.
        """
        first_page = await self.get_json(uri)
        if first_page is None:
            return []

        try:
            meta = first_page["meta"]
            limit = int(meta["limit"])
            total_count = int(meta["totalCount"])
            data = first_page["data"]
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Response of %s is not a paginated list: %s", uri, e)
            return []
        if not isinstance(data, list):
            logger.error("Response of %s has no data array", uri)
            return []
        results = _objects(data)

        if limit <= 0 or total_count <= limit:
            return results

        remaining_pages = math.ceil((total_count - limit) / limit)
        pages = await asyncio.gather(
            *(
                self._get_page_data(
                    add_query_parameter(uri, f"offset={limit * page}")
                )
                for page in range(1, remaining_pages + 1)
            )
        )
        for page_data in pages:
            results.extend(page_data)
        return results

    async def _get_page_data(self, uri: str) -> list[dict[str, Any]]:
        page = await self.get_json(uri)
        if isinstance(page, dict) and isinstance(page.get("data"), list):
            return _objects(page["data"])
        if page is not None:
            logger.error("Page %s has no data array", uri)
        return []

    async def is_link_reachable(self, uri: str, method: str = "GET") -> bool:
        """Return True if a ``method`` request on ``uri`` answers with status 200."""
        return await self._request(method, uri, quiet=True) is not None

    # ------------------------------------------------------------------
    # POST
    # ------------------------------------------------------------------

    @staticmethod
    def _csrf_headers(referer: str, token: str, content_type: str) -> dict[str, str]:
        return {
            "Referer": referer,
            "X-CSRFToken": token,
            "Content-Type": content_type,
        }

    async def post_form(
        self,
        uri: str,
        fields: dict[str, str],
        referer: str,
        token: str,
    ) -> str | None:
        """POST url-encoded ``fields`` and return the response body."""
        response = await self._request(
            "POST",
            uri,
            data=fields,
            headers=self._csrf_headers(referer, token, FORM_CONTENT_TYPE),
        )
        return response.text if response is not None else None

    async def post_bytes(
        self,
        uri: str,
        body: bytearray,
        referer: str,
        token: str,
    ) -> str | None:
        """POST an already url-encoded body, then overwrite it with zeros.

        Used for bodies holding credentials; the buffer is scrubbed as soon
        as the request has been dispatched, whatever the outcome.
        """
        try:
            response = await self._request(
                "POST",
                uri,
                content=bytes(body),
                headers=self._csrf_headers(referer, token, FORM_CONTENT_TYPE),
            )
        finally:
            body[:] = bytes(len(body))
        return response.text if response is not None else None

    async def post_json(
        self,
        uri: str,
        body: Any,
        referer: str,
        token: str,
    ) -> str | None:
        """POST ``body`` serialized as JSON and return the response body."""
        response = await self._request(
            "POST",
            uri,
            json=body,
            headers=self._csrf_headers(referer, token, "application/json"),
        )
        return response.text if response is not None else None
