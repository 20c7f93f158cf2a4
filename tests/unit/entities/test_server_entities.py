"""Tests for omero_client.entities.server_entities module."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fakes import OME, image_json

from omero_client.entities.permissions import Group, Owner
from omero_client.entities.repository import PopulationState
from omero_client.entities.server_entities import (
    Dataset,
    Image,
    Plate,
    PlateAcquisition,
    Project,
    Screen,
    Well,
    decode_entities,
    decode_entity,
    entity_class_for,
)

PROJECT_JSON: dict[str, Any] = {
    "@id": 1,
    "@type": f"{OME}Project",
    "Name": "Lung cohort",
    "Description": "Slides of 2021",
    "omero:childCount": 2,
    "omero:details": {
        "owner": {"@id": 3, "FirstName": "Ada", "LastName": "Lovelace"},
        "group": {"@id": 5, "Name": "pathology"},
    },
}


class FakeApis:
    """Records child requests and answers them from canned entities."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.datasets = [
            Dataset.model_validate({"@id": 10, "Name": "a", "omero:childCount": 1}),
            Dataset.model_validate({"@id": 11, "Name": "b", "omero:childCount": 0}),
        ]

    async def get_datasets(self, project_id: int) -> list[Dataset]:
        self.calls.append(("datasets", project_id))
        await asyncio.sleep(0.01)
        return self.datasets

    async def get_images(self, dataset_id: int) -> list[Image]:
        self.calls.append(("images", dataset_id))
        return [Image.model_validate(image_json(100))]

    async def get_plates(self, screen_id: int) -> list[Plate]:
        self.calls.append(("plates", screen_id))
        return [Plate.model_validate({"@id": 30, "Name": "plate", "Columns": 2, "Rows": 3})]

    async def get_plate_acquisitions(self, plate_id: int) -> list[PlateAcquisition]:
        self.calls.append(("acquisitions", plate_id))
        return [
            PlateAcquisition.model_validate(
                {"@id": 40, "Name": "run", "omero:wellsampleIndex": [0, 1]}
            )
        ]

    async def get_wells_from_plate(self, plate_id: int) -> list[Well]:
        self.calls.append(("wells", plate_id))
        return [
            Well.model_validate(
                {
                    "@id": 50,
                    "Column": 1,
                    "Row": 2,
                    "WellSamples": [
                        {"Image": {"@id": 101}},
                        {"Image": {"@id": 102}, "PlateAcquisition": {"@id": 40}},
                    ],
                }
            )
        ]

    async def get_wells_from_plate_acquisition(
        self, acquisition_id: int, well_sample_index: int
    ) -> list[Well]:
        self.calls.append(("acquisition_wells", (acquisition_id, well_sample_index)))
        return await self.get_wells_from_plate(0)

    async def populate_images(self, image_ids: list[int], sink: list[Any]) -> None:
        self.calls.append(("populate_images", tuple(image_ids)))
        sink.extend(Image.model_validate(image_json(image_id)) for image_id in image_ids)


class TestDecodeEntity:
    """Tests for the decode dispatch."""

    def test_full_schema_tag(self) -> None:
        entity = decode_entity(PROJECT_JSON)
        assert isinstance(entity, Project)
        assert entity.id == 1
        assert entity.name == "Lung cohort"
        assert entity.description == "Slides of 2021"
        assert entity.child_count == 2

    @pytest.mark.parametrize("tag", ["Dataset", "dataset", "DATASET", f"{OME}dataset"])
    def test_tag_is_case_insensitive(self, tag: str) -> None:
        assert isinstance(decode_entity({"@id": 2, "@type": tag}), Dataset)

    def test_class_field_is_accepted(self) -> None:
        assert isinstance(decode_entity({"@id": 2, "class": "Screen"}), Screen)

    def test_unknown_type_returns_none(self) -> None:
        assert decode_entity({"@id": 2, "@type": f"{OME}Folder"}) is None

    def test_missing_type_returns_none(self) -> None:
        assert decode_entity({"@id": 2}) is None

    def test_malformed_returns_none(self) -> None:
        assert decode_entity({"@id": "not-a-number", "@type": "Project"}) is None
        assert decode_entity(["not", "an", "object"]) is None

    def test_decoding_twice_gives_equal_entities(self) -> None:
        assert decode_entity(PROJECT_JSON) == decode_entity(PROJECT_JSON)

    def test_details_replace_sentinels(self) -> None:
        entity = decode_entity(PROJECT_JSON)
        assert entity is not None
        assert entity.owner.id == 3
        assert entity.owner.full_name == "Ada Lovelace"
        assert entity.group == Group(id=5, name="pathology")

    def test_missing_details_keep_sentinels(self) -> None:
        entity = decode_entity({"@id": 1, "@type": "Project"})
        assert entity is not None
        assert entity.owner == Owner.ALL_MEMBERS
        assert entity.group == Group.ALL_GROUPS

    def test_entity_class_for(self) -> None:
        assert entity_class_for(f"{OME}PlateAcquisition") is PlateAcquisition
        assert entity_class_for("well") is Well
        assert entity_class_for("Roi") is None


class TestDecodeEntities:
    """Tests for list decoding."""

    def test_malformed_elements_are_skipped(self) -> None:
        items = [
            {"@id": 1, "@type": "Dataset"},
            {"@id": "x", "@type": "Dataset"},
            {"@id": 3, "@type": "Unknown"},
            {"@id": 4, "@type": "Dataset"},
        ]
        datasets = decode_entities(items, Dataset)
        assert [dataset.id for dataset in datasets] == [1, 4]

    def test_other_types_are_skipped(self) -> None:
        items = [{"@id": 1, "@type": "Dataset"}, {"@id": 2, "@type": "Project"}]
        assert [entity.id for entity in decode_entities(items, Dataset)] == [1]


class TestEquality:
    """Tests for id-based equality."""

    def test_same_type_and_id_are_equal(self) -> None:
        first = Project.model_validate({"@id": 1, "Name": "a"})
        second = Project.model_validate({"@id": 1, "Name": "renamed"})
        assert first == second
        assert len({first, second}) == 1

    def test_same_id_different_type_differ(self) -> None:
        assert Project.model_validate({"@id": 1}) != Dataset.model_validate({"@id": 1})


class TestLabelsAndChildren:
    """Tests for labels and has_children hints."""

    def test_container_label_shows_child_count(self) -> None:
        project = Project.model_validate({"@id": 1, "Name": "p", "omero:childCount": 4})
        assert project.label == "p (4)"
        assert project.has_children

    def test_empty_container_has_no_children(self) -> None:
        assert not Dataset.model_validate({"@id": 1, "omero:childCount": 0}).has_children

    def test_image_and_well_never_have_children(self) -> None:
        assert not Image.model_validate(image_json(1)).has_children
        well = Well.model_validate({"@id": 1, "Column": 2, "Row": 3})
        assert not well.has_children
        assert well.label == "Column: 2, Row: 3"

    def test_image_rgb(self) -> None:
        image = Image.model_validate(image_json(1))
        assert image.pixel_type == "uint8"
        assert image.is_rgb

    def test_plate_acquisition_well_sample_index(self) -> None:
        acquisition = PlateAcquisition.model_validate(
            {"@id": 1, "omero:wellsampleIndex": [3, 8]}
        )
        assert acquisition.well_sample_index == 3
        assert PlateAcquisition.model_validate({"@id": 1}).well_sample_index == 0

    def test_well_image_ids(self) -> None:
        well = Well.model_validate(
            {
                "@id": 1,
                "WellSamples": [
                    {"Image": {"@id": 7}},
                    {"Image": {"@id": 8}, "PlateAcquisition": {"@id": 2}},
                ],
            }
        )
        assert well.image_ids(with_plate_acquisition=False) == [7]
        assert well.image_ids(with_plate_acquisition=True) == [8]


class TestGetChildren:
    """Tests for lazy child population."""

    @pytest.mark.asyncio
    async def test_children_fetched_once(self) -> None:
        apis = FakeApis()
        project = decode_entity(PROJECT_JSON, apis)  # type: ignore[arg-type]
        assert project is not None
        assert project.population_state is PopulationState.UNPOPULATED
        assert project.children == []

        results = await asyncio.gather(
            project.get_children(), project.get_children(), project.get_children()
        )

        assert apis.calls == [("datasets", 1)]
        assert all(result == apis.datasets for result in results)
        assert project.population_state is PopulationState.POPULATED
        assert project.children == apis.datasets

        await project.get_children()
        assert apis.calls == [("datasets", 1)]

    @pytest.mark.asyncio
    async def test_childless_entity_makes_no_request(self) -> None:
        apis = FakeApis()
        dataset = decode_entity({"@id": 1, "@type": "Dataset", "omero:childCount": 0}, apis)  # type: ignore[arg-type]
        assert dataset is not None
        assert await dataset.get_children() == []
        assert apis.calls == []

    @pytest.mark.asyncio
    async def test_unbound_entity_raises(self) -> None:
        project = decode_entity(PROJECT_JSON)
        assert project is not None
        with pytest.raises(RuntimeError, match="not bound"):
            await project.get_children()

    @pytest.mark.asyncio
    async def test_screen_children_are_plates(self) -> None:
        apis = FakeApis()
        screen = decode_entity({"@id": 9, "@type": "Screen", "omero:childCount": 1}, apis)  # type: ignore[arg-type]
        assert screen is not None
        children = await screen.get_children()
        assert [type(child) for child in children] == [Plate]
        assert apis.calls == [("plates", 9)]

    @pytest.mark.asyncio
    async def test_plate_children(self) -> None:
        """Acquisitions first, then images of samples outside any acquisition."""
        apis = FakeApis()
        plate = decode_entity({"@id": 30, "@type": "Plate", "Columns": 2, "Rows": 3}, apis)  # type: ignore[arg-type]
        assert plate is not None
        assert plate.has_children

        children = await plate.get_children()

        assert isinstance(children[0], PlateAcquisition)
        assert children[0].number_of_wells == 6
        assert children[0].label == "run (6)"
        assert [child.id for child in children[1:]] == [101]
        assert ("populate_images", (101,)) in apis.calls

    @pytest.mark.asyncio
    async def test_plate_acquisition_children(self) -> None:
        apis = FakeApis()
        acquisition = decode_entity(
            {"@id": 40, "@type": "PlateAcquisition", "omero:wellsampleIndex": [0, 1]},
            apis,  # type: ignore[arg-type]
        )
        assert isinstance(acquisition, PlateAcquisition)
        acquisition.number_of_wells = 6

        children = await acquisition.get_children()

        assert [child.id for child in children] == [102]
        assert apis.calls[0] == ("acquisition_wells", (40, 0))


class TestIsFilteredBy:
    """Tests for the group/owner/name filter."""

    @pytest.fixture
    def project(self) -> Project:
        entity = decode_entity(PROJECT_JSON)
        assert isinstance(entity, Project)
        return entity

    def test_no_filter_matches(self, project: Project) -> None:
        assert project.is_filtered_by(None, None, None)

    def test_sentinels_match_everything(self, project: Project) -> None:
        assert project.is_filtered_by(Group.ALL_GROUPS, Owner.ALL_MEMBERS, "")

    def test_group_filter(self, project: Project) -> None:
        assert project.is_filtered_by(Group(id=5), None, None)
        assert not project.is_filtered_by(Group(id=6), None, None)

    def test_owner_filter(self, project: Project) -> None:
        assert project.is_filtered_by(None, Owner(id=3), None)
        assert not project.is_filtered_by(None, Owner(id=4), None)

    def test_name_filter_is_case_insensitive_substring(self, project: Project) -> None:
        assert project.is_filtered_by(None, None, "LUNG")
        assert project.is_filtered_by(None, None, "cohort")
        assert not project.is_filtered_by(None, None, "liver")
