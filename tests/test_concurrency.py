import asyncio

import pytest

from ammsync.concurrency import ProgressTracker, run_concurrent, run_concurrent_mapping
from ammsync.exceptions import AmmSyncValueError, BatchError


class RangeFetcher:
    """
    Returns the indices of the requested range. Indices in `failing` always fail. Indices in
    `flaky` fail the given number of times, then succeed.
    """

    def __init__(
        self,
        failing: set[int] | None = None,
        flaky: dict[int, int] | None = None,
        delay_end: int | None = None,
    ) -> None:
        self.failing = failing or set()
        self.flaky = flaky or {}
        self.delay_end = delay_end
        self.requests: list[tuple[int, int]] = []

    async def fetch(self, start: int, end: int) -> list[int]:
        self.requests.append((start, end))

        if self.delay_end is not None:
            # Earlier chunks finish last
            await asyncio.sleep(0.001 * (self.delay_end - start))

        for index in range(start, end):
            if index in self.failing:
                raise BatchError(start, end)
            if self.flaky.get(index, 0) > 0:
                self.flaky[index] -= 1
                raise BatchError(start, end)

        return list(range(start, end))


class ModuloFetcher:
    async def fetch(self, start: int, end: int) -> dict[int, int]:
        await asyncio.sleep(0.001 * (100 - start))
        return {index % 3: index for index in range(start, end)}


@pytest.mark.parametrize("step", [1, 7, 10, 100, 1_000])
async def test_chunk_size_does_not_change_result(step: int):
    result = await run_concurrent(
        start=0,
        end=100,
        step=step,
        fetcher=RangeFetcher(),
        show_progress=False,
    )
    assert result == list(range(100))


@pytest.mark.parametrize("step", [1, 10, 100])
async def test_single_failing_element_is_dropped(step: int):
    fetcher = RangeFetcher(failing={37})
    result = await run_concurrent(
        start=0,
        end=100,
        step=step,
        fetcher=fetcher,
        show_progress=False,
    )

    assert len(result) == 99
    assert 37 not in result
    assert result == [index for index in range(100) if index != 37]
    assert (37, 38) in fetcher.requests


async def test_failed_chunk_is_retried_by_element():
    fetcher = RangeFetcher(failing={15})
    await run_concurrent(
        start=0,
        end=30,
        step=10,
        fetcher=fetcher,
        show_progress=False,
    )

    unit_requests = sorted(request for request in fetcher.requests if request[1] - request[0] == 1)
    assert unit_requests == [(index, index + 1) for index in range(10, 20)]


async def test_results_are_kept_in_dispatch_order():
    fetcher = RangeFetcher(delay_end=100)
    result = await run_concurrent(
        start=0,
        end=100,
        step=10,
        fetcher=fetcher,
        show_progress=False,
    )
    assert result == list(range(100))


async def test_last_chunk_is_clipped():
    fetcher = RangeFetcher()
    result = await run_concurrent(
        start=0,
        end=25,
        step=10,
        fetcher=fetcher,
        show_progress=False,
    )
    assert result == list(range(25))
    assert sorted(fetcher.requests) == [(0, 10), (10, 20), (20, 25)]


async def test_nonzero_start():
    fetcher = RangeFetcher()
    result = await run_concurrent(
        start=1_000,
        end=1_005,
        step=2,
        fetcher=fetcher,
        show_progress=False,
    )
    assert result == [1_000, 1_001, 1_002, 1_003, 1_004]
    assert sorted(fetcher.requests) == [(1_000, 1_002), (1_002, 1_004), (1_004, 1_005)]


async def test_empty_range():
    fetcher = RangeFetcher()
    assert (
        await run_concurrent(
            start=5,
            end=5,
            step=10,
            fetcher=fetcher,
            show_progress=False,
        )
        == []
    )
    assert fetcher.requests == []


@pytest.mark.parametrize("step", [0, -1])
async def test_invalid_step(step: int):
    with pytest.raises(AmmSyncValueError):
        await run_concurrent(
            start=0,
            end=10,
            step=step,
            fetcher=RangeFetcher(),
            show_progress=False,
        )


async def test_invalid_retry_count():
    with pytest.raises(AmmSyncValueError):
        await run_concurrent(
            start=0,
            end=10,
            step=5,
            fetcher=RangeFetcher(),
            max_unit_retries=0,
            show_progress=False,
        )


async def test_flaky_element_dropped_with_single_attempt():
    # The chunk fails once, then the element fails once more during its only unit attempt
    result = await run_concurrent(
        start=0,
        end=10,
        step=10,
        fetcher=RangeFetcher(flaky={5: 2}),
        max_unit_retries=1,
        show_progress=False,
    )
    assert result == [0, 1, 2, 3, 4, 6, 7, 8, 9]


async def test_flaky_element_recovered_with_extra_attempts():
    fetcher = RangeFetcher(flaky={5: 2})
    result = await run_concurrent(
        start=0,
        end=10,
        step=10,
        fetcher=fetcher,
        max_unit_retries=3,
        show_progress=False,
    )
    assert result == list(range(10))
    assert fetcher.requests.count((5, 6)) == 2


async def test_mapping_later_chunks_win():
    result = await run_concurrent_mapping(
        start=0,
        end=100,
        step=10,
        fetcher=ModuloFetcher(),
        show_progress=False,
    )
    assert result == {0: 99, 1: 97, 2: 98}


async def test_unexpected_exception_propagates():
    class BrokenFetcher:
        async def fetch(self, start: int, end: int) -> list[int]:
            if start == 20:
                raise RuntimeError("unexpected")
            return list(range(start, end))

    with pytest.raises(RuntimeError, match="unexpected"):
        await run_concurrent(
            start=0,
            end=50,
            step=10,
            fetcher=BrokenFetcher(),
            show_progress=False,
        )


async def test_progress_tracker_counts_concurrent_updates():
    progress = ProgressTracker(total=100, description="Testing", disable=True)
    await asyncio.gather(*[progress.advance(1) for _ in range(100)])
    progress.close()
    assert progress.completed == 100
