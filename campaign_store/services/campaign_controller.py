from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from campaign_store.config import DEFAULT_INDEX_FIELDS
from campaign_store.core.data_store import DataStore
from campaign_store.core.event_bus import EventBus, Events
from campaign_store.core.exceptions import FilterSpecError
from campaign_store.core.filter_engine import FilterEngine
from campaign_store.core.filter_spec import FilterSpec
from campaign_store.services.render_target import RenderTarget

logger = logging.getLogger(__name__)

KEYWORD_FILTER = "descriptionKeyword"


class CampaignController:
    """
    Coordinates the DataStore, the FilterEngine and an external render target.

    - Every store change (DATA_UPDATED / DATA_LOADED) re-applies the most recent filter
      specification and pushes the result with a single replace_data() call
    - UI_FILTER_CHANGED events replace the current specification (last write wins)
    - A PERFORMANCE_WARNING from the filter engine switches on index-assisted filtering;
      from then on indexes are rebuilt whenever the store revision has moved
    """

    def __init__(
        self,
        bus: EventBus,
        store: DataStore,
        engine: FilterEngine,
        render_target: Optional[RenderTarget] = None,
        *,
        index_fields: Sequence[str] = DEFAULT_INDEX_FIELDS,
        auto_index: bool = False,
        source: str = "campaigns",
    ) -> None:
        self._bus = bus
        self.store = store
        self.engine = engine
        self.render_target = render_target
        self.index_fields = list(index_fields)
        self.source = source

        self._filters: Dict[str, Any] = {}
        self._spec = FilterSpec()
        self._index_enabled = auto_index and engine.indexing is not None
        self.filtered_data: List[Dict[str, Any]] = []

        self._unsubscribers: List[Callable[[], None]] = [
            bus.subscribe(Events.DATA_UPDATED, self._on_store_changed),
            bus.subscribe(Events.DATA_LOADED, self._on_store_changed),
            bus.subscribe(Events.UI_FILTER_CHANGED, self._on_filter_changed),
            bus.subscribe(Events.PERFORMANCE_WARNING, self._on_performance_warning),
        ]

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------
    def load_data(self, records: Any) -> None:
        """Replace the store contents; the view refreshes through DATA_LOADED."""
        self.store.set_data(records)

    async def load_data_chunked(self, records: Any, chunk_size: int = 100) -> None:
        await self.store.load_data_chunked(records, chunk_size=chunk_size)

    # -------------------------------------------------------------------------
    # Campaign operations
    # -------------------------------------------------------------------------
    def add_campaign(self, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.store.add_row(data)
        except Exception as e:
            self._report_error("add_campaign", e)
            raise

    def update_campaign(self, campaign_id: str, updates: Mapping[str, Any]) -> bool:
        try:
            return self.store.update_row(campaign_id, updates)
        except Exception as e:
            self._report_error("update_campaign", e)
            return False

    def delete_campaign(self, campaign_id: str) -> bool:
        try:
            return self.store.delete_row(campaign_id)
        except Exception as e:
            self._report_error("delete_campaign", e)
            return False

    def restore_campaign(self, campaign_id: str) -> bool:
        try:
            return self.store.restore_row(campaign_id)
        except Exception as e:
            self._report_error("restore_campaign", e)
            return False

    def purge_campaign(self, campaign_id: str) -> bool:
        """Permanently remove a campaign. Only soft-deleted campaigns can be purged."""
        try:
            return self.store.permanently_delete_row(campaign_id)
        except Exception as e:
            self._report_error("purge_campaign", e)
            return False

    def _report_error(self, operation: str, error: Exception) -> None:
        logger.exception("Campaign operation failed", extra={"operation": operation})
        self._bus.publish(
            Events.DATA_ERROR,
            {"source": self.source, "operation": operation, "error": str(error)},
        )

    # -------------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------------
    @property
    def current_filters(self) -> Dict[str, Any]:
        return dict(self._filters)

    def apply_filters(self, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """
        Make filters the current specification, push the filtered view to the render target
        and return it.

        Raises:
            FilterSpecError: if filters doesn't fit the field registry (current spec is kept)
        """
        spec = self.engine.parse(filters)
        self._filters = dict(filters)
        self._spec = spec

        start = time.perf_counter()
        view = self._refresh()
        duration_ms = (time.perf_counter() - start) * 1000

        self._bus.publish(
            Events.FILTER_APPLIED,
            {
                "source": self.source,
                "filters": dict(filters),
                "result_count": len(view),
                "duration_ms": duration_ms,
            },
        )
        return view

    def search_by_description(self, search_term: str) -> List[Dict[str, Any]]:
        """Re-apply the current filters with the description keywords taken from search_term."""
        keywords = search_term.split()
        filters = dict(self._filters)
        if keywords:
            filters[KEYWORD_FILTER] = keywords
        else:
            filters.pop(KEYWORD_FILTER, None)
        return self.apply_filters(filters)

    def get_unique_values(self, field: str) -> List[Any]:
        """Distinct non-empty values of field across active campaigns, sorted (for filter options)."""
        if self.engine.indexing is None:
            return self._scan_unique_values(field)
        cached = self.engine.indexing.memoize(
            "unique_values",
            lambda f, _revision: self._scan_unique_values(f),
            field,
            self.store.revision,
        )
        return list(cached)

    def _scan_unique_values(self, field: str) -> List[Any]:
        values = set()
        for row in self.store.get_data():
            value = row.get(field)
            if value is None or value == "":
                continue
            try:
                values.add(value)
            except TypeError:
                continue
        return sorted(values, key=str)

    def rebuild_indexes(self) -> None:
        self.engine.rebuild_indexes(self.store.get_data(), self.index_fields, self.store.revision)

    def _compute_view(self) -> List[Dict[str, Any]]:
        data = self.store.get_data()
        revision = self.store.revision

        if self._index_enabled and not self._spec.is_empty and not self.engine.indexing.is_current(revision):
            self.engine.rebuild_indexes(data, self.index_fields, revision)

        return list(self.engine.apply(data, self._spec, revision=revision))

    def _refresh(self) -> List[Dict[str, Any]]:
        view = self._compute_view()
        self.filtered_data = view
        if self.render_target is not None:
            self.render_target.replace_data(view)
        return view

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    def get_data(self, include_deleted: bool = False) -> List[Dict[str, Any]]:
        return self.store.get_master_data() if include_deleted else self.store.get_data()

    def get_filtered_data(self) -> List[Dict[str, Any]]:
        return list(self.filtered_data)

    def get_deleted_campaigns(self) -> List[Dict[str, Any]]:
        return self.store.get_deleted_rows()

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = asdict(self.store.get_stats())
        stats.update(
            {
                "filtered_count": len(self.filtered_data),
                "has_render_target": self.render_target is not None,
                "current_filter_count": len(self._spec.predicates),
                "index_enabled": self._index_enabled,
            }
        )
        if self.engine.indexing is not None:
            stats["index_cache"] = asdict(self.engine.indexing.get_cache_stats())
        return stats

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------
    def _on_store_changed(self, payload: Any) -> None:
        if isinstance(payload, Mapping) and payload.get("source", self.source) != self.source:
            return

        self._refresh()
        self._bus.publish(
            Events.CHART_REFRESH_NEEDED,
            {
                "source": self.source,
                "reason": payload.get("action", "load") if isinstance(payload, Mapping) else "load",
            },
        )

    def _on_filter_changed(self, payload: Any) -> None:
        if not isinstance(payload, Mapping) or not isinstance(payload.get("filters"), Mapping):
            logger.warning("Ignoring filter change without a 'filters' mapping")
            return
        try:
            self.apply_filters(payload["filters"])
        except FilterSpecError as e:
            logger.warning("Ignoring invalid filter specification", extra={"error": str(e)})

    def _on_performance_warning(self, payload: Any) -> None:
        if self.engine.indexing is None:
            return
        if isinstance(payload, Mapping) and payload.get("operation") != self.engine.operation:
            return

        if not self._index_enabled:
            logger.info("Enabling index-assisted filtering after performance warning")
            self._index_enabled = True
        self.rebuild_indexes()

    def close(self) -> None:
        """Drop every bus subscription held by this controller."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
