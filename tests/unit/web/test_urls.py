"""Tests for omero_client.web.urls module."""

import pytest

from omero_client.exceptions import OmeroError
from omero_client.web.urls import (
    add_query_parameter,
    normalize_server_uri,
    parse_entity_id,
    with_port,
)


class TestNormalizeServerUri:
    """Tests for normalize_server_uri."""

    def test_keeps_scheme_and_authority(self) -> None:
        uri = "https://idr.openmicroscopy.org/webclient/?show=image-1"
        assert normalize_server_uri(uri) == "https://idr.openmicroscopy.org"

    def test_keeps_port(self) -> None:
        assert normalize_server_uri("http://localhost:4080/api/") == "http://localhost:4080"

    def test_two_pages_of_same_server_are_equal(self) -> None:
        first = normalize_server_uri("https://omero.test/webclient/img_detail/1/")
        second = normalize_server_uri("https://omero.test/api/v0/m/projects/")
        assert first == second

    @pytest.mark.parametrize("uri", ["omero.test", "ftp://omero.test", "https://", ""])
    def test_rejects_invalid_uri(self, uri: str) -> None:
        with pytest.raises(OmeroError):
            normalize_server_uri(uri)


class TestAddQueryParameter:
    """Tests for add_query_parameter."""

    def test_first_parameter_uses_question_mark(self) -> None:
        assert add_query_parameter("https://h/a/", "offset=2") == "https://h/a/?offset=2"

    def test_next_parameter_uses_ampersand(self) -> None:
        uri = "https://h/a/?childCount=true"
        assert add_query_parameter(uri, "offset=2") == "https://h/a/?childCount=true&offset=2"


class TestParseEntityId:
    """Tests for parse_entity_id."""

    @pytest.mark.parametrize(
        ("uri", "expected"),
        [
            ("https://h/webclient/?show=project-5", ("project", 5)),
            ("https://h/webclient/?show=dataset-12", ("dataset", 12)),
            ("https://h/api/v0/m/datasets/12/", ("dataset", 12)),
            ("https://h/webclient/?show=image-42", ("image", 42)),
            ("https://h/webclient/img_detail/42/", ("image", 42)),
            ("https://h/iviewer/?images=42", ("image", 42)),
            ("https://h/api/v0/m/images/42/", ("image", 42)),
            ("https://h/webclient/?show=screen-3", ("screen", 3)),
            ("https://h/webclient/?show=plate-7", ("plate", 7)),
        ],
    )
    def test_known_patterns(self, uri: str, expected: tuple[str, int]) -> None:
        assert parse_entity_id(uri) == expected

    def test_unknown_uri_returns_none(self) -> None:
        assert parse_entity_id("https://h/webclient/") is None


class TestWithPort:
    """Tests for with_port."""

    def test_replaces_port(self) -> None:
        assert with_port("https://omero.test:443", 8082) == "https://omero.test:8082"

    def test_adds_port(self) -> None:
        assert with_port("https://omero.test", 8082) == "https://omero.test:8082"
