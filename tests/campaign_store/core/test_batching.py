from __future__ import annotations

import asyncio

import pytest

from campaign_store.core.batching import iter_chunks, process_in_chunks


def test_iter_chunks_preserves_order():
    assert [list(c) for c in iter_chunks([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]


def test_iter_chunks_rejects_bad_size():
    with pytest.raises(ValueError):
        list(iter_chunks([1], 0))


def test_process_in_chunks_yields_between_chunks():
    interleaved = []

    async def other_task():
        interleaved.append("other")

    async def run():
        def processor(x):
            interleaved.append(x)
            return x * 10

        task = asyncio.ensure_future(other_task())
        results = await process_in_chunks([1, 2, 3, 4], processor, chunk_size=2)
        await task
        return results

    results = asyncio.run(run())

    assert results == [10, 20, 30, 40]
    # the competing task ran after the first chunk, not after the whole batch
    assert interleaved == [1, 2, "other", 3, 4]


def test_process_in_chunks_reports_progress():
    progress = []

    asyncio.run(process_in_chunks(list(range(5)), str, chunk_size=2, on_progress=lambda n, t: progress.append((n, t))))

    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_process_in_chunks_empty():
    assert asyncio.run(process_in_chunks([], str)) == []
