from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable, Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def iter_chunks(items: Sequence[T], chunk_size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most chunk_size items, in order."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    for start in range(0, len(items), chunk_size):
        yield items[start:start + chunk_size]


async def process_in_chunks(
    items: Sequence[T],
    processor: Callable[[T], R],
    chunk_size: int = 100,
    on_progress: Optional[ProgressCallback] = None,
) -> List[R]:
    """
    Apply processor to every item, chunk by chunk, yielding to the event loop between chunks
    so a host loop stays responsive during large imports.

    Results keep the input order. on_progress(chunk_number, total_chunks) runs after each chunk.
    """
    results: List[R] = []
    total_chunks = math.ceil(len(items) / chunk_size) if items else 0

    for chunk_number, chunk in enumerate(iter_chunks(items, chunk_size), start=1):
        results.extend(processor(item) for item in chunk)

        if on_progress is not None:
            on_progress(chunk_number, total_chunks)

        if chunk_number < total_chunks:
            await asyncio.sleep(0)

    logger.debug("Processed items in chunks", extra={"count": len(items), "chunks": total_chunks})
    return results
