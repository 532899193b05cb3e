"""
Concurrent range runner.

A range [start, end) is split into fixed-size chunks, which are fetched concurrently by a
`BatchFetcher`. A chunk that fails with `BatchError` is re-fetched one element at a time, so a
single bad element (e.g. a token with a broken `decimals()`) only costs that element instead of
the whole chunk. Elements that still fail after the retry budget are dropped and logged.
"""

import asyncio
import time
from collections.abc import Hashable
from typing import Protocol

import tqdm
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ammsync.exceptions import AmmSyncValueError, BatchError
from ammsync.logging import logger

DEFAULT_MAX_UNIT_RETRIES = 1


class BatchFetcher[ResultT](Protocol):
    """
    Fetches the results for the half-open range [start, end), raising `BatchError` on failure.
    """

    async def fetch(self, start: int, end: int) -> ResultT: ...


class ProgressTracker:
    """
    A progress bar shared by all tasks of a single runner invocation.
    """

    def __init__(self, total: int, description: str, *, disable: bool = False) -> None:
        self._lock = asyncio.Lock()
        self._bar = tqdm.tqdm(
            total=total,
            desc=description,
            bar_format="{desc}: {percentage:3.1f}% |{bar}| {n_fmt}/{total_fmt}",
            leave=False,
            disable=disable,
        )
        self.completed = 0

    async def advance(self, count: int) -> None:
        async with self._lock:
            self.completed += count
            self._bar.update(count)

    def close(self) -> None:
        self._bar.close()


def _chunk_range(start: int, end: int, step: int) -> list[tuple[int, int]]:
    if step <= 0:
        raise AmmSyncValueError(message=f"Step must be positive, got {step}.")
    return [(chunk_start, min(chunk_start + step, end)) for chunk_start in range(start, end, step)]


async def _fetch_chunk[ResultT](
    fetcher: BatchFetcher[ResultT],
    start: int,
    end: int,
    progress: ProgressTracker,
) -> ResultT:
    result = await fetcher.fetch(start, end)
    await progress.advance(end - start)
    return result


async def _fetch_unit[ResultT](
    fetcher: BatchFetcher[ResultT],
    index: int,
    max_attempts: int,
    progress: ProgressTracker,
) -> ResultT | None:
    retrier = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=0.05, max=1.0, jitter=0.05),
        retry=retry_if_exception_type(BatchError),
        reraise=True,
    )
    try:
        return await retrier(_fetch_chunk, fetcher, index, index + 1, progress)
    except BatchError:
        logger.debug(f"Dropped element {index} after {max_attempts} failed attempt(s)")
        return None


async def _run_chunks[ResultT](
    start: int,
    end: int,
    step: int,
    fetcher: BatchFetcher[ResultT],
    max_unit_retries: int,
    description: str,
    show_progress: bool,  # noqa: FBT001
) -> list[ResultT]:
    """
    Fetch all chunks concurrently and return the successful results in dispatch order. The results
    for a failed chunk are replaced in-place by the results of its surviving elements.
    """

    if max_unit_retries < 1:
        raise AmmSyncValueError(message="max_unit_retries must be at least 1.")

    chunks = _chunk_range(start, end, step)
    if not chunks:
        return []

    progress = ProgressTracker(
        total=end - start,
        description=description,
        disable=not show_progress,
    )
    start_time = time.perf_counter()

    try:
        chunk_results = await asyncio.gather(
            *[
                _fetch_chunk(fetcher, chunk_start, chunk_end, progress)
                for chunk_start, chunk_end in chunks
            ],
            return_exceptions=True,
        )

        results: list[ResultT] = []
        for (chunk_start, chunk_end), chunk_result in zip(chunks, chunk_results, strict=True):
            match chunk_result:
                case BatchError():
                    logger.debug(
                        f"Batch [{chunk_start}, {chunk_end}) failed, "
                        f"retrying {chunk_end - chunk_start} element(s) individually"
                    )
                    unit_results = await asyncio.gather(
                        *[
                            _fetch_unit(fetcher, index, max_unit_retries, progress)
                            for index in range(chunk_start, chunk_end)
                        ]
                    )
                    results.extend(result for result in unit_results if result is not None)
                case BaseException():
                    raise chunk_result
                case _:
                    results.append(chunk_result)
    finally:
        progress.close()

    logger.debug(
        f"Fetched range [{start}, {end}) in {len(chunks)} chunk(s), "
        f"{progress.completed} of {end - start} element(s) succeeded "
        f"({time.perf_counter() - start_time:.2f}s)"
    )
    return results


async def run_concurrent[ItemT](
    start: int,
    end: int,
    step: int,
    fetcher: BatchFetcher[list[ItemT]],
    *,
    max_unit_retries: int = DEFAULT_MAX_UNIT_RETRIES,
    description: str = "Fetching",
    show_progress: bool = True,
) -> list[ItemT]:
    """
    Fetch [start, end) in chunks of `step` and concatenate the results in chunk order.
    """

    aggregate: list[ItemT] = []
    for result in await _run_chunks(
        start=start,
        end=end,
        step=step,
        fetcher=fetcher,
        max_unit_retries=max_unit_retries,
        description=description,
        show_progress=show_progress,
    ):
        aggregate.extend(result)
    return aggregate


async def run_concurrent_mapping[KeyT: Hashable, ValueT](
    start: int,
    end: int,
    step: int,
    fetcher: BatchFetcher[dict[KeyT, ValueT]],
    *,
    max_unit_retries: int = DEFAULT_MAX_UNIT_RETRIES,
    description: str = "Fetching",
    show_progress: bool = True,
) -> dict[KeyT, ValueT]:
    """
    Fetch [start, end) in chunks of `step` and merge the results in chunk order, with values from
    later chunks replacing earlier values for the same key.
    """

    aggregate: dict[KeyT, ValueT] = {}
    for result in await _run_chunks(
        start=start,
        end=end,
        step=step,
        fetcher=fetcher,
        max_unit_retries=max_unit_retries,
        description=description,
        show_progress=show_progress,
    ):
        aggregate.update(result)
    return aggregate
