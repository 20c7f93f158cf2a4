"""Tests for login, annotation, search and permission models."""

from __future__ import annotations

import json

import pytest

from omero_client.entities.annotations import (
    AnnotationGroup,
    CommentAnnotation,
    FileAnnotation,
    MapAnnotation,
    RatingAnnotation,
    TagAnnotation,
    decode_annotation,
)
from omero_client.entities.login import LoginResponse, LoginStatus
from omero_client.entities.permissions import (
    Group,
    Owner,
    group_from_details,
    owner_from_details,
)
from omero_client.entities.search import SearchQuery, parse_search_results


class TestPermissions:
    """Tests for Owner and Group."""

    def test_owner_equality_is_by_id(self) -> None:
        assert Owner(id=1, first_name="A") == Owner(id=1, first_name="B")
        assert Owner(id=1) != Owner(id=2)

    def test_full_name_skips_blanks(self) -> None:
        owner = Owner(id=1, first_name="Ada", last_name="Lovelace")
        assert owner.full_name == "Ada Lovelace"

    def test_sentinels(self) -> None:
        assert Owner.ALL_MEMBERS.id == -1
        assert Group.ALL_GROUPS.id == -1

    def test_from_details(self) -> None:
        details = {"owner": {"@id": 2, "UserName": "ada"}, "group": {"@id": 3, "Name": "g"}}
        owner = owner_from_details(details)
        assert owner is not None
        assert owner.username == "ada"
        assert group_from_details(details) == Group(id=3)

    def test_from_missing_details(self) -> None:
        assert owner_from_details(None) is None
        assert group_from_details({"group": "nope"}) is None
        assert owner_from_details({"owner": {"FirstName": "no id"}}) is None


class TestLoginResponse:
    """Tests for LoginResponse."""

    def test_from_server_response(self) -> None:
        body = json.dumps(
            {
                "success": True,
                "eventContext": {
                    "userId": 2,
                    "userName": "ada",
                    "sessionUuid": "uuid-1",
                    "groupId": 3,
                    "groupName": "lab",
                },
            }
        )

        response = LoginResponse.from_server_response(body)

        assert response.status is LoginStatus.SUCCESS
        assert response.user_id == 2
        assert response.username == "ada"
        assert response.session_uuid == "uuid-1"
        assert response.group == Group(id=3, name="lab")

    @pytest.mark.parametrize("body", ["not json", "{}", '{"eventContext": {"userId": 1}}'])
    def test_unreadable_response_is_failed(self, body: str) -> None:
        assert LoginResponse.from_server_response(body).status is LoginStatus.FAILED

    def test_unsuccessful_rejects_success(self) -> None:
        assert LoginResponse.unsuccessful(LoginStatus.CANCELED).session_uuid is None
        with pytest.raises(ValueError, match="session details"):
            LoginResponse.unsuccessful(LoginStatus.SUCCESS)


class TestAnnotations:
    """Tests for annotation decoding."""

    def test_dispatch_on_class(self) -> None:
        assert isinstance(decode_annotation({"class": "TagAnnotationI", "textValue": "t"}), TagAnnotation)
        assert isinstance(decode_annotation({"class": "CommentAnnotationI"}), CommentAnnotation)
        assert isinstance(decode_annotation({"class": "FileAnnotationI"}), FileAnnotation)
        assert isinstance(decode_annotation({"class": "LongAnnotationI"}), RatingAnnotation)
        assert decode_annotation({"class": "XmlAnnotationI"}) is None
        assert decode_annotation({"id": 1}) is None

    def test_map_annotation_accepts_pairs(self) -> None:
        annotation = decode_annotation(
            {"class": "MapAnnotationI", "values": [["stain", "H&E"], ["bad"]]}
        )
        assert isinstance(annotation, MapAnnotation)
        assert annotation.values == {"stain": "H&E"}

    def test_rating_is_capped(self) -> None:
        annotation = decode_annotation({"class": "LongAnnotationI", "longValue": 9})
        assert isinstance(annotation, RatingAnnotation)
        assert annotation.value == 5

    def test_file_annotation(self) -> None:
        annotation = decode_annotation(
            {"class": "FileAnnotationI", "file": {"name": "a.csv", "size": "12"}}
        )
        assert isinstance(annotation, FileAnnotation)
        assert annotation.filename == "a.csv"
        assert annotation.size == 12
        assert annotation.mimetype is None

    def test_group_resolves_experimenters(self) -> None:
        group = AnnotationGroup.from_json(
            {
                "annotations": [
                    {
                        "class": "TagAnnotationI",
                        "textValue": "tumor",
                        "owner": {"id": 2},
                        "link": {"owner": {"id": 3}},
                    },
                    {"class": "Unknown"},
                ],
                "experimenters": [
                    {"id": 2, "firstName": "Ada", "lastName": "L"},
                    {"id": 3, "firstName": "Bob"},
                ],
            }
        )

        tags = group.of_type(TagAnnotation)
        assert len(tags) == 1
        tag = tags[0]
        assert isinstance(tag, TagAnnotation)
        assert tag.value == "tumor"
        assert tag.owner is not None and tag.owner.full_name == "Ada L"
        assert tag.adder is not None and tag.adder.full_name == "Bob"
        assert group.of_type(MapAnnotation) == []

    def test_group_from_malformed(self) -> None:
        assert AnnotationGroup.from_json("nope").annotations == {}


SEARCH_HTML = """
<table>
<tr id="image-12" class="row">
  <td><a href="/webclient/?show=image-12">x</a></td>
  <td class="desc"><a>slide.svs</a></td>
  <td class="date" data-isodate='Mon, 02 Jan 2023 10:00:00 +0000'></td>
  <td class="date" data-isodate='garbage'></td>
  <td class="group">lab</td>
</tr>
<tr id="dataset-abc" class="row"><td></td></tr>
<tr id="dataset-4" class="row"><td></td></tr>
</table>
"""


class TestSearch:
    """Tests for search queries and result parsing."""

    def test_query_fields_and_types(self) -> None:
        query = SearchQuery(
            query="slide", search_on_description=True, search_for_projects=True
        )
        assert query.fields == ["name", "description"]
        assert query.data_types == ["images", "projects"]

    def test_parse_results(self) -> None:
        results = parse_search_results(SEARCH_HTML, "https://omero.test")

        assert [(result.type, result.id) for result in results] == [
            ("image", 12),
            ("dataset", 4),
        ]
        image = results[0]
        assert image.name == "slide.svs"
        assert image.group == "lab"
        assert image.link == "https://omero.test/webclient/?show=image-12"
        assert image.date_acquired is not None and image.date_acquired.year == 2023
        assert image.date_imported is None
        assert results[1].name == "-"
