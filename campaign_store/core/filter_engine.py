from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .event_bus import EventBus, Events
from .filter_spec import ExactMatch, FieldRegistry, FilterSpec, Membership, Predicate
from .indexing import IndexingService, KeyFunc
from .records import ID_KEY

logger = logging.getLogger(__name__)

DEFAULT_WARNING_THRESHOLD_MS = 50.0

Record = Mapping[str, Any]


class FilterEngine:
    """
    Turns a filter specification into a filtered view of a record list.

    - Predicates are AND-combined across fields (OR within a membership list)
    - No active predicate: the input is returned untouched, no record is evaluated
    - Single-value exact/membership predicates go through the IndexingService when its
      snapshot matches the revision of the records being filtered; the rest is a linear pass
    - Every pass is timed; a pass slower than warning_threshold_ms publishes PERFORMANCE_WARNING
    """

    def __init__(
        self,
        bus: EventBus,
        *,
        registry: Optional[FieldRegistry] = None,
        indexing: Optional[IndexingService] = None,
        warning_threshold_ms: float = DEFAULT_WARNING_THRESHOLD_MS,
        operation: str = "filter_campaigns",
    ) -> None:
        self._bus = bus
        self.registry = registry or FieldRegistry.default()
        self.indexing = indexing
        self.warning_threshold_ms = warning_threshold_ms
        self.operation = operation

    def parse(self, raw: Union[FilterSpec, Mapping[str, Any]]) -> FilterSpec:
        """Validate a raw {field: value} mapping against the registry. Raises FilterSpecError."""
        if isinstance(raw, FilterSpec):
            return raw
        return FilterSpec.from_mapping(raw, self.registry)

    # -------------------------------------------------------------------------
    # Index support
    # -------------------------------------------------------------------------
    def index_key_funcs(self, fields: Sequence[str]) -> Dict[str, KeyFunc]:
        """Key normalisers so that index keys compare the same way predicates do."""
        return {f: self.registry.normalizer_for(f) for f in fields}

    def rebuild_indexes(self, records: Sequence[Record], fields: Sequence[str], revision: int) -> None:
        if self.indexing is None:
            return
        self.indexing.create_indexes(
            records,
            fields,
            revision=revision,
            key_funcs=self.index_key_funcs(fields),
        )

    def _index_value(self, pred: Predicate) -> tuple[bool, Any]:
        if isinstance(pred, ExactMatch):
            return True, pred.value
        if isinstance(pred, Membership) and len(pred.values) == 1:
            return True, next(iter(pred.values))
        return False, None

    # -------------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------------
    def apply(
        self,
        records: Sequence[Record],
        spec: Union[FilterSpec, Mapping[str, Any]],
        *,
        revision: Optional[int] = None,
    ) -> Sequence[Record]:
        """
        Filter records by spec.

        :param records: the active dataset
        :param spec: FilterSpec or raw mapping (validated here)
        :param revision: store revision records were read at; enables index use when current
        """
        spec = self.parse(spec)

        if spec.is_empty:
            return records

        start = time.perf_counter()

        use_index = (
            self.indexing is not None
            and revision is not None
            and self.indexing.is_current(revision)
        )

        working: Sequence[Record] = records
        remaining: List[Predicate] = []
        indexed_predicates = 0

        for pred in spec.predicates:
            single, value = self._index_value(pred)
            if use_index and single and self.indexing.has_index(pred.field.target):
                ids = self.indexing.ids_for(pred.field.target, value)
                working = [r for r in working if r.get(ID_KEY) in ids]
                indexed_predicates += 1
            else:
                remaining.append(pred)

        if remaining:
            working = [r for r in working if all(p.matches(r) for p in remaining)]

        result = list(working)
        duration_ms = (time.perf_counter() - start) * 1000

        self._bus.publish(
            Events.PERFORMANCE_MEASURE,
            {
                "operation": self.operation,
                "duration_ms": duration_ms,
                "record_count": len(result),
                "input_count": len(records),
                "filter_count": len(spec.predicates),
                "indexed_filters": indexed_predicates,
            },
        )

        if duration_ms > self.warning_threshold_ms:
            logger.warning(
                "Filtering took longer than expected",
                extra={
                    "operation": self.operation,
                    "duration_ms": round(duration_ms, 3),
                    "threshold_ms": self.warning_threshold_ms,
                },
            )
            self._bus.publish(
                Events.PERFORMANCE_WARNING,
                {
                    "operation": self.operation,
                    "duration_ms": duration_ms,
                    "threshold_ms": self.warning_threshold_ms,
                    "record_count": len(records),
                    "message": "Campaign filtering took longer than expected",
                },
            )

        return result
