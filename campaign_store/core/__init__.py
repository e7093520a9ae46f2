"""
Core data layer: event bus, record store, secondary indexes
and the filter engine
"""

from .data_store import DataStore
from .event_bus import EventBus, Events
from .filter_engine import FilterEngine
from .filter_spec import FieldKind, FieldRegistry, FilterSpec
from .indexing import IndexingService

__all__ = [
    "DataStore",
    "EventBus",
    "Events",
    "FilterEngine",
    "FieldKind",
    "FieldRegistry",
    "FilterSpec",
    "IndexingService",
]
