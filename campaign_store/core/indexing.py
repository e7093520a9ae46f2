from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .event_bus import EventBus, Events
from .records import ID_KEY

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]
KeyFunc = Callable[[Any], Any]

DEFAULT_MAX_CACHE_SIZE = 1000
MIN_CACHE_SIZE = 500
MAX_CACHE_SIZE_LIMIT = 2000
SLOW_CALCULATION_MS = 10.0


@dataclass(frozen=True)
class CacheStats:
    hit_count: int
    miss_count: int
    total_requests: int
    hit_rate: float  # percent, 0..100
    index_count: int
    memoized_size: int = 0
    max_cache_size: int = 0


def _identity(value: Any) -> Any:
    return value


class IndexingService:
    """
    Secondary indexes over a point-in-time snapshot of records.

    For every indexed field two maps are built:
    - single-value map: key -> last record seen with that key ("last wins")
    - list map: key -> every record with that key, in snapshot order

    Indexes are not maintained incrementally. After mutations the caller rebuilds them
    with create_indexes(); is_current(revision) tells whether a rebuild is due.

    Also holds a bounded memo cache for derived values (memoize()).
    """

    def __init__(self, bus: Optional[EventBus] = None, *, max_cache_size: int = DEFAULT_MAX_CACHE_SIZE) -> None:
        self._bus = bus
        self.max_cache_size = max_cache_size
        self._memo: "OrderedDict[str, Any]" = OrderedDict()
        self._single: Dict[str, Dict[Any, Record]] = {}
        self._lists: Dict[str, Dict[Any, List[Record]]] = {}
        self._key_funcs: Dict[str, KeyFunc] = {}
        self._revision: Optional[int] = None
        self.hit_count = 0
        self.miss_count = 0

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------
    def create_indexes(
        self,
        data: Iterable[Record],
        fields: Sequence[str],
        *,
        revision: Optional[int] = None,
        key_funcs: Optional[Mapping[str, KeyFunc]] = None,
    ) -> None:
        """
        Rebuild every index from data.

        :param data: record snapshot
        :param fields: fields to index
        :param revision: store revision the snapshot was taken at
        :param key_funcs: optional per-field key normaliser (e.g. quarter normalisation);
            lookups go through the same function
        """
        start = time.perf_counter()
        key_funcs = dict(key_funcs or {})
        funcs = {f: key_funcs.get(f, _identity) for f in fields}

        single: Dict[str, Dict[Any, Record]] = {f: {} for f in fields}
        lists: Dict[str, Dict[Any, List[Record]]] = {f: {} for f in fields}

        count = 0
        for record in data:
            count += 1
            for f in fields:
                # missing values are keyed too, the same way predicates normalise them
                key = funcs[f](record.get(f))
                try:
                    single[f][key] = record
                except TypeError:
                    # unhashable values (lists, dicts) are not indexable
                    continue
                lists[f].setdefault(key, []).append(record)

        # Swap in complete maps only once they are fully built
        self._single = single
        self._lists = lists
        self._key_funcs = funcs
        self._revision = revision

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Created indexes",
            extra={"record_count": count, "index_count": len(fields), "duration_ms": round(duration_ms, 3)},
        )
        if self._bus is not None:
            self._bus.publish(
                Events.PERFORMANCE_MEASURE,
                {
                    "operation": "create_indexes",
                    "duration_ms": duration_ms,
                    "record_count": count,
                    "index_count": len(fields),
                },
            )

    def clear(self) -> None:
        self._single = {}
        self._lists = {}
        self._key_funcs = {}
        self._revision = None
        self._memo.clear()
        self.hit_count = 0
        self.miss_count = 0

    def is_current(self, revision: int) -> bool:
        return self._revision is not None and self._revision == revision

    @property
    def indexed_fields(self) -> List[str]:
        return list(self._lists.keys())

    def has_index(self, field: str) -> bool:
        return field in self._lists

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------
    def _key(self, field: str, value: Any) -> Any:
        return self._key_funcs.get(field, _identity)(value)

    def find_by_field(self, field: str, value: Any) -> Optional[Record]:
        """O(1) lookup of the last record whose field equals value."""
        index = self._single.get(field)
        if index is None:
            self.miss_count += 1
            logger.warning("No index for field", extra={"field": field})
            return None

        try:
            result = index.get(self._key(field, value))
        except TypeError:
            result = None

        if result is None:
            self.miss_count += 1
            return None
        self.hit_count += 1
        return result

    def find_all_by_field(self, field: str, value: Any) -> List[Record]:
        """O(1) lookup of every record whose field equals value."""
        index = self._lists.get(field)
        if index is None:
            self.miss_count += 1
            logger.warning("No list index for field", extra={"field": field})
            return []

        try:
            result = index.get(self._key(field, value), [])
        except TypeError:
            result = []

        if result:
            self.hit_count += 1
        else:
            self.miss_count += 1
        return list(result)

    def get_cache_stats(self) -> CacheStats:
        total = self.hit_count + self.miss_count
        return CacheStats(
            hit_count=self.hit_count,
            miss_count=self.miss_count,
            total_requests=total,
            hit_rate=(self.hit_count / total * 100) if total else 0.0,
            index_count=len(self._lists),
            memoized_size=len(self._memo),
            max_cache_size=self.max_cache_size,
        )

    # -------------------------------------------------------------------------
    # Memoisation
    # -------------------------------------------------------------------------
    @staticmethod
    def _cache_key(operation: str, args: Sequence[Any]) -> Optional[str]:
        try:
            return f"{operation}:{json.dumps(list(args), sort_keys=True)}"
        except (TypeError, ValueError):
            return None

    def memoize(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        """
        Return fn(*args), caching the result under operation + args.

        - Hits and misses feed the same counters as index lookups
        - The cache holds at most max_cache_size results; the oldest entry is evicted first
        - Arguments that aren't JSON-serialisable are never cached
        - Entries are not invalidated by store mutations; callers put the store revision in args
        """
        key = self._cache_key(operation, args)
        if key is not None and key in self._memo:
            self.hit_count += 1
            return self._memo[key]

        start = time.perf_counter()
        result = fn(*args)
        duration_ms = (time.perf_counter() - start) * 1000
        self.miss_count += 1

        if key is not None:
            self._memo[key] = result
            while len(self._memo) > self.max_cache_size:
                self._memo.popitem(last=False)

        if duration_ms > SLOW_CALCULATION_MS and self._bus is not None:
            self._bus.publish(
                Events.PERFORMANCE_MEASURE,
                {
                    "operation": f"memoized_{operation}",
                    "duration_ms": duration_ms,
                    "cached": False,
                },
            )
        return result

    def optimize_cache(self) -> int:
        """
        Resize the memo cache from the observed hit rate: grow by half below 70%
        (up to MAX_CACHE_SIZE_LIMIT), shrink by a fifth above 90% (down to MIN_CACHE_SIZE).

        :return: the new max_cache_size
        """
        hit_rate = self.get_cache_stats().hit_rate
        if hit_rate < 70 and self.max_cache_size < MAX_CACHE_SIZE_LIMIT:
            self.max_cache_size = min(int(self.max_cache_size * 1.5), MAX_CACHE_SIZE_LIMIT)
            logger.info("Increased memo cache size", extra={"max_cache_size": self.max_cache_size})
        elif hit_rate > 90 and self.max_cache_size > MIN_CACHE_SIZE:
            self.max_cache_size = max(int(self.max_cache_size * 0.8), MIN_CACHE_SIZE)
            logger.info("Decreased memo cache size", extra={"max_cache_size": self.max_cache_size})

        while len(self._memo) > self.max_cache_size:
            self._memo.popitem(last=False)
        return self.max_cache_size

    # -------------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------------
    def ids_for(self, field: str, value: Any) -> set:
        return {r[ID_KEY] for r in self.find_all_by_field(field, value)}

    def optimized_filter(self, data: Sequence[Record], filters: Mapping[str, Any]) -> List[Record]:
        """
        Filter data by a plain {field: value | [values]} mapping, AND across fields.

        Single-value lists on indexed fields are resolved through the list index; everything
        else is a linear pass over the (possibly already narrowed) working set.
        """
        start = time.perf_counter()
        results: List[Record] = list(data)

        for field, wanted in filters.items():
            if isinstance(wanted, (list, tuple)) and len(wanted) == 1 and self.has_index(field):
                ids = self.ids_for(field, wanted[0])
                results = [r for r in results if r.get(ID_KEY) in ids]
            elif isinstance(wanted, (list, tuple)) and wanted:
                keys = [self._key(field, w) for w in wanted]
                results = [r for r in results if self._key(field, r.get(field)) in keys]
            elif wanted is not None and not isinstance(wanted, (list, tuple)):
                key = self._key(field, wanted)
                results = [r for r in results if self._key(field, r.get(field)) == key]

        duration_ms = (time.perf_counter() - start) * 1000
        if self._bus is not None:
            self._bus.publish(
                Events.PERFORMANCE_MEASURE,
                {
                    "operation": "optimized_filter",
                    "duration_ms": duration_ms,
                    "input_count": len(data),
                    "output_count": len(results),
                    "filter_count": len(filters),
                },
            )
        return results
