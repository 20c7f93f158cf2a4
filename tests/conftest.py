"""Shared pytest fixtures and configuration."""

from collections.abc import Iterator

import httpx
import pytest
import respx
from fakes import API_BASE, API_LINKS, HOST, TOKEN

from omero_client.config import Settings
from omero_client.utils.logging import clear_correlation_context


@pytest.fixture(autouse=True)
def reset_logging_context() -> Iterator[None]:
    """Reset correlation context between tests."""
    clear_correlation_context()
    yield
    clear_correlation_context()


@pytest.fixture
def test_settings() -> Settings:
    """Create a Settings instance with test-safe defaults."""
    return Settings(
        LOG_LEVEL="DEBUG",
        LOG_FORMAT="console",
        REQUEST_RETRIES=0,
        MAX_REQUESTS_PER_SECOND=10_000,
        KEEPALIVE_INTERVAL_SECONDS=0.01,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
def omero_server() -> Iterator[respx.MockRouter]:
    """Mocked OMERO server answering the API discovery requests.

    Tests add the routes they need on the returned router. A request
    without a matching route fails the test.
    """
    with respx.mock(assert_all_called=False) as router:
        router.get(f"{HOST}/api/").mock(
            return_value=httpx.Response(
                200, json={"data": [{"version": "0", "url:base": API_BASE}]}
            )
        )
        router.get(API_BASE).mock(return_value=httpx.Response(200, json=API_LINKS))
        router.get(API_LINKS["url:servers"]).mock(
            return_value=httpx.Response(
                200, json={"data": [{"id": 1, "host": "omero.test", "port": 4064}]}
            )
        )
        router.get(API_LINKS["url:token"]).mock(
            return_value=httpx.Response(200, json={"data": TOKEN})
        )
        yield router
