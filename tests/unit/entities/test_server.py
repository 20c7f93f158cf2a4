"""Tests for omero_client.entities.server module."""

from __future__ import annotations

from typing import Any

import pytest

from omero_client.entities.permissions import Group, Owner
from omero_client.entities.repository import PopulationState
from omero_client.entities.server import OrphanedFolder, Server
from omero_client.entities.server_entities import Dataset, Plate, Project, Screen


class FakeApis:
    def __init__(self, groups: list[Group], owners: list[Owner]) -> None:
        self.groups = groups
        self.owners = owners
        self.calls: list[str] = []

    async def get_groups(self) -> list[Group]:
        return self.groups

    async def get_owners(self) -> list[Owner]:
        return self.owners

    async def get_projects(self) -> list[Project]:
        self.calls.append("projects")
        return [Project.model_validate({"@id": 1})]

    async def get_orphaned_datasets(self) -> list[Dataset]:
        self.calls.append("datasets")
        return [Dataset.model_validate({"@id": 2})]

    async def get_screens(self) -> list[Screen]:
        self.calls.append("screens")
        return [Screen.model_validate({"@id": 3})]

    async def get_orphaned_plates(self) -> list[Plate]:
        self.calls.append("plates")
        return [Plate.model_validate({"@id": 4})]

    async def get_number_of_orphaned_images(self) -> int:
        self.calls.append("orphaned")
        return 12

    async def populate_orphaned_images_into_list(self, sink: list[Any]) -> None:
        sink.extend(["a", "b"])


@pytest.fixture
def apis() -> FakeApis:
    return FakeApis([Group(id=3, name="lab")], [Owner(id=2), Owner(id=5)])


class TestServerCreate:
    """Tests for Server.create."""

    @pytest.mark.asyncio
    async def test_lists_start_with_sentinels(self, apis: FakeApis) -> None:
        server = await Server.create(apis, Group(id=3), 5)  # type: ignore[arg-type]

        assert server is not None
        assert server.groups == [Group.ALL_GROUPS, Group(id=3)]
        assert server.owners == [Owner.ALL_MEMBERS, Owner(id=2), Owner(id=5)]
        assert server.default_group == Group(id=3)
        assert server.default_owner == Owner(id=5)

    @pytest.mark.asyncio
    async def test_no_group_fails(self, apis: FakeApis) -> None:
        apis.groups = []
        assert await Server.create(apis) is None  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_no_owner_fails(self, apis: FakeApis) -> None:
        apis.owners = []
        assert await Server.create(apis) is None  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_unknown_default_user_fails(self, apis: FakeApis) -> None:
        assert await Server.create(apis, None, 99) is None  # type: ignore[arg-type]


class TestServerChildren:
    """Tests for the browsing root."""

    @pytest.mark.asyncio
    async def test_children_order(self, apis: FakeApis) -> None:
        server = await Server.create(apis)  # type: ignore[arg-type]
        assert server is not None
        assert server.has_children
        assert server.population_state is PopulationState.UNPOPULATED

        children = await server.get_children()

        assert [type(child) for child in children] == [
            Project,
            Dataset,
            Screen,
            Plate,
            OrphanedFolder,
        ]
        assert apis.calls == ["projects", "datasets", "screens", "plates", "orphaned"]
        assert server.is_filtered_by(Group(id=9), Owner(id=9), "nothing")

    @pytest.mark.asyncio
    async def test_orphaned_folder(self, apis: FakeApis) -> None:
        folder = await OrphanedFolder.create(apis)  # type: ignore[arg-type]

        assert folder.label == "Orphaned Images (12)"
        assert folder.has_children
        assert await folder.get_children() == ["a", "b"]
        assert folder.population_state is PopulationState.POPULATED
