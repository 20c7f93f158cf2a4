"""Tests for omero_client.entities.repository module."""

from __future__ import annotations

import asyncio

import pytest

from omero_client.entities.repository import (
    LazyChildren,
    PopulationState,
    gather_in_batches,
)


class TestLazyChildren:
    """Tests for single-flight population."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_fetch_once(self) -> None:
        children: LazyChildren[int] = LazyChildren()
        calls = 0

        async def fetch(sink: list[int]) -> None:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            sink.extend([1, 2, 3])

        results = await asyncio.gather(
            children.populate(fetch), children.populate(fetch), children.populate(fetch)
        )

        assert calls == 1
        assert results == [[1, 2, 3]] * 3
        assert children.state is PopulationState.POPULATED

    @pytest.mark.asyncio
    async def test_state_is_populating_during_fetch(self) -> None:
        children: LazyChildren[int] = LazyChildren()
        seen: list[PopulationState] = []

        async def fetch(sink: list[int]) -> None:
            seen.append(children.state)
            sink.append(1)
            seen.append(len(children.snapshot()))  # type: ignore[arg-type]

        assert children.state is PopulationState.UNPOPULATED
        await children.populate(fetch)
        assert seen == [PopulationState.POPULATING, 1]

    @pytest.mark.asyncio
    async def test_failure_resets_and_allows_retry(self) -> None:
        children: LazyChildren[int] = LazyChildren()

        async def failing(sink: list[int]) -> None:
            sink.append(1)
            raise RuntimeError("boom")

        async def working(sink: list[int]) -> None:
            sink.append(2)

        with pytest.raises(RuntimeError, match="boom"):
            await children.populate(failing)
        assert children.state is PopulationState.UNPOPULATED
        assert children.snapshot() == []

        assert await children.populate(working) == [2]

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self) -> None:
        children: LazyChildren[int] = LazyChildren()

        async def fetch(sink: list[int]) -> None:
            sink.append(1)

        result = await children.populate(fetch)
        result.append(99)
        assert children.snapshot() == [1]


class TestGatherInBatches:
    """Tests for batched concurrent fetching."""

    @pytest.mark.asyncio
    async def test_batches_are_sequential(self) -> None:
        in_flight = 0
        peak = 0
        progress: list[int] = []
        sink: list[int] = []

        async def fetch_one(entity_id: int) -> int | None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return None if entity_id == 5 else entity_id * 10

        await gather_in_batches(list(range(7)), fetch_one, sink, 3, progress.append)

        assert peak <= 3
        assert progress == [3, 6, 7]
        assert sink == [0, 10, 20, 30, 40, 60]

    @pytest.mark.asyncio
    async def test_empty_ids(self) -> None:
        progress: list[int] = []

        async def fetch_one(entity_id: int) -> int:
            return entity_id

        await gather_in_batches([], fetch_one, [], 4, progress.append)
        assert progress == []

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self) -> None:
        async def fetch_one(entity_id: int) -> int:
            return entity_id

        with pytest.raises(ValueError, match="batch_size"):
            await gather_in_batches([1], fetch_one, [], 0)
