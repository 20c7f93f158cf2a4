"""Lazily-populated entity graph primitives.

Each node of the browsing tree (server, project, dataset, screen, plate,
plate acquisition, orphaned folder) owns a LazyChildren container. The
first ``await node.get_children()`` moves it from UNPOPULATED through
POPULATING to POPULATED; concurrent and later calls wait on the same
population instead of issuing another request.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from omero_client.entities.permissions import Group, Owner

ChildT = TypeVar("ChildT")


class PopulationState(str, Enum):
    """Lifecycle of a node's children."""

    UNPOPULATED = "unpopulated"
    POPULATING = "populating"
    POPULATED = "populated"


class LazyChildren(Generic[ChildT]):
    """Single-flight holder of a node's children.

    The fetch coroutine receives the live child list and appends to it,
    so a long population (orphaned images) is observable through
    ``snapshot()`` while it runs.
    """

    def __init__(self) -> None:
        self._children: list[ChildT] = []
        self._state = PopulationState.UNPOPULATED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> PopulationState:
        return self._state

    def snapshot(self) -> list[ChildT]:
        """Children installed so far, without triggering any I/O."""
        return list(self._children)

    async def populate(
        self, fetch: Callable[[list[ChildT]], Awaitable[None]]
    ) -> list[ChildT]:
        """Run ``fetch`` once for the lifetime of this container.

        Returns:
            All children once population is complete.
        """
        if self._state is PopulationState.POPULATED:
            return self.snapshot()

        async with self._lock:
            if self._state is not PopulationState.POPULATED:
                self._state = PopulationState.POPULATING
                try:
                    await fetch(self._children)
                except BaseException:
                    # Cancelled or buggy fetch: allow a later call to retry
                    self._children.clear()
                    self._state = PopulationState.UNPOPULATED
                    raise
                self._state = PopulationState.POPULATED
        return self.snapshot()


@runtime_checkable
class RepositoryEntity(Protocol):
    """Anything that can appear in the browsing tree."""

    @property
    def label(self) -> str: ...

    @property
    def has_children(self) -> bool: ...

    @property
    def children(self) -> list[RepositoryEntity]: ...

    @property
    def population_state(self) -> PopulationState: ...

    async def get_children(self) -> list[RepositoryEntity]: ...

    def is_filtered_by(
        self,
        group: Group | None,
        owner: Owner | None,
        name: str | None,
    ) -> bool: ...


async def gather_in_batches(
    ids: list[int],
    fetch_one: Callable[[int], Awaitable[ChildT | None]],
    sink: list[ChildT],
    batch_size: int,
    on_batch: Callable[[int], None] | None = None,
) -> None:
    """Fetch ``ids`` in consecutive batches of at most ``batch_size``.

    Requests inside a batch run concurrently; a batch starts only when
    the previous one has completed. Each finished batch is appended to
    ``sink`` (failed fetches are skipped) before ``on_batch`` is told how
    many IDs have been processed in total.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    processed = 0
    for start in range(0, len(ids), batch_size):
        batch = ids[start : start + batch_size]
        results = await asyncio.gather(*(fetch_one(entity_id) for entity_id in batch))
        sink.extend(result for result in results if result is not None)
        processed += len(batch)
        if on_batch is not None:
            on_batch(processed)
