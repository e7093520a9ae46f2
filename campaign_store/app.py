from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from campaign_store.config import StoreSettings, load_settings
from campaign_store.core.data_store import DataStore
from campaign_store.core.event_bus import EventBus
from campaign_store.core.filter_engine import FilterEngine
from campaign_store.core.filter_spec import FieldRegistry
from campaign_store.core.indexing import IndexingService
from campaign_store.services.campaign_controller import CampaignController
from campaign_store.services.render_target import InMemoryRenderTarget, RenderTarget
from campaign_store.services.snapshot_service import SnapshotService
from campaign_store.services.storage import LocalFileSystemStorage

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """
    Holds the wired-up components: one bus shared by the store, the indexes, the filter engine
    and the controller. Passed around instead of module-level globals.
    """
    settings: StoreSettings
    bus: EventBus
    store: DataStore
    indexing: IndexingService
    engine: FilterEngine
    controller: CampaignController
    render_target: RenderTarget
    snapshots: Optional[SnapshotService] = None


def create_app(
    settings: Optional[StoreSettings] = None,
    *,
    render_target: Optional[RenderTarget] = None,
    storage_root: Optional[Path | str] = None,
) -> AppContext:
    """
    Build the component graph.

    :param settings: defaults to load_settings() (JSON file / environment)
    :param render_target: defaults to an InMemoryRenderTarget
    :param storage_root: directory for JSON snapshots; no SnapshotService without it
    """
    settings = settings or load_settings()

    registry = FieldRegistry.from_settings(settings.fields)

    bus = EventBus()
    store = DataStore(bus, change_log_capacity=settings.change_log_capacity)
    indexing = IndexingService(bus, max_cache_size=settings.memo_cache_size)
    engine = FilterEngine(
        bus,
        registry=registry,
        indexing=indexing,
        warning_threshold_ms=settings.filter_warning_ms,
    )
    render_target = render_target or InMemoryRenderTarget()
    controller = CampaignController(
        bus,
        store,
        engine,
        render_target,
        index_fields=settings.index_fields,
        auto_index=settings.auto_index,
    )

    snapshots = None
    if storage_root is not None:
        snapshots = SnapshotService(LocalFileSystemStorage(Path(storage_root)), store)

    logger.info(
        "Campaign store initialised",
        extra={"index_fields": settings.index_fields, "auto_index": settings.auto_index},
    )

    return AppContext(
        settings=settings,
        bus=bus,
        store=store,
        indexing=indexing,
        engine=engine,
        controller=controller,
        render_target=render_target,
        snapshots=snapshots,
    )
