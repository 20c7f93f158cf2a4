"""Roots of the browsing tree: the server itself and its orphaned-images folder."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from omero_client.entities.permissions import Group, Owner
from omero_client.entities.repository import (
    LazyChildren,
    PopulationState,
    RepositoryEntity,
)
from omero_client.entities.server_entities import Image

if TYPE_CHECKING:
    from omero_client.apis.handler import ApisHandler

logger = logging.getLogger(__name__)


class OrphanedFolder:
    """Virtual folder holding the images that belong to no dataset.

    Populating it can mean thousands of detail requests, so images are
    loaded in fixed-size batches; the handler's orphaned-images counters
    advance after each batch and ``children`` grows as batches complete.
    """

    def __init__(self, apis: ApisHandler, number_of_children: int) -> None:
        self._apis = apis
        self._number_of_children = number_of_children
        self._children: LazyChildren[Image] = LazyChildren()

    @classmethod
    async def create(cls, apis: ApisHandler) -> OrphanedFolder:
        return cls(apis, await apis.get_number_of_orphaned_images())

    def __str__(self) -> str:
        return f"Orphaned folder containing {self._number_of_children} images"

    @property
    def label(self) -> str:
        return f"Orphaned Images ({self._number_of_children})"

    @property
    def number_of_children(self) -> int:
        return self._number_of_children

    @property
    def has_children(self) -> bool:
        return self._number_of_children > 0

    @property
    def children(self) -> list[Image]:
        return self._children.snapshot()

    @property
    def population_state(self) -> PopulationState:
        return self._children.state

    async def get_children(self) -> list[Image]:
        return await self._children.populate(self._apis.populate_orphaned_images_into_list)

    def is_filtered_by(
        self,
        group: Group | None,
        owner: Owner | None,
        name: str | None,
    ) -> bool:
        return True


class Server:
    """Root of the browsing tree of one connection.

    Holds the groups and owners of the server (each list starts with its
    "all" sentinel) and, as children, the projects, orphaned datasets,
    screens, orphaned plates and the orphaned-images folder.
    """

    def __init__(self, apis: ApisHandler) -> None:
        self._apis = apis
        self._groups: list[Group] = [Group.ALL_GROUPS]
        self._owners: list[Owner] = [Owner.ALL_MEMBERS]
        self._default_group: Group | None = None
        self._default_owner: Owner | None = None
        self._children: LazyChildren[RepositoryEntity] = LazyChildren()

    @classmethod
    async def create(
        cls,
        apis: ApisHandler,
        default_group: Group | None = None,
        default_user_id: int | None = None,
    ) -> Server | None:
        """Load groups and owners and check the defaults exist on the server.

        Returns:
            The server, or None if the server lists no group or owner, or
            if the default group or user is unknown to it.
        """
        server = cls(apis)

        groups = await apis.get_groups()
        if not groups:
            logger.error("The server didn't return any group")
            return None
        if default_group is not None and default_group not in groups:
            logger.error("Default group %s not found on the server", default_group)
            return None
        server._groups.extend(groups)
        server._default_group = default_group

        owners = await apis.get_owners()
        if not owners:
            logger.error("The server didn't return any owner")
            return None
        server._owners.extend(owners)
        if default_user_id is not None:
            server._default_owner = next(
                (owner for owner in owners if owner.id == default_user_id), None
            )
            if server._default_owner is None:
                logger.error("Owner %d not found on the server", default_user_id)
                return None

        return server

    def __str__(self) -> str:
        return f"Server containing the following children: {self.children}"

    @property
    def label(self) -> str:
        return "Server"

    @property
    def groups(self) -> list[Group]:
        return list(self._groups)

    @property
    def owners(self) -> list[Owner]:
        return list(self._owners)

    @property
    def default_group(self) -> Group | None:
        return self._default_group

    @property
    def default_owner(self) -> Owner | None:
        return self._default_owner

    @property
    def has_children(self) -> bool:
        return True

    @property
    def children(self) -> list[RepositoryEntity]:
        return self._children.snapshot()

    @property
    def population_state(self) -> PopulationState:
        return self._children.state

    async def get_children(self) -> list[RepositoryEntity]:
        return await self._children.populate(self._populate)

    async def _populate(self, sink: list[RepositoryEntity]) -> None:
        sink.extend(await self._apis.get_projects())
        sink.extend(await self._apis.get_orphaned_datasets())
        sink.extend(await self._apis.get_screens())
        sink.extend(await self._apis.get_orphaned_plates())
        sink.append(await OrphanedFolder.create(self._apis))

    def is_filtered_by(
        self,
        group: Group | None,
        owner: Owner | None,
        name: str | None,
    ) -> bool:
        return True
