from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from campaign_store.core.data_store import DataStore
from campaign_store.core.records import now_iso
from campaign_store.services.storage import StorageBackend

logger = logging.getLogger(__name__)

SNAPSHOT_DIR = "snapshots"
SCHEMA_VERSION = 1

_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class SnapshotInfo:
    name: str
    saved_at: str
    count: int


class SnapshotService:
    """
    Saves and restores JSON snapshots of the store through a StorageBackend.

    This is the local stand-in for the sync collaborator: it reads the store through
    get_data()/get_master_data() and writes back only through set_data().
    """

    def __init__(self, storage: StorageBackend, store: DataStore):
        self.storage = storage
        self.store = store

    @staticmethod
    def _path(name: str) -> str:
        if not _NAME_RE.match(name):
            raise ValueError(f"Invalid snapshot name '{name}'")
        return f"{SNAPSHOT_DIR}/{name}.json"

    def save_snapshot(self, name: str, *, include_deleted: bool = False) -> Optional[SnapshotInfo]:
        """
        Write the active records (or the whole master collection) under name.

        Soft-deleted state isn't part of the persisted shape; with include_deleted=True those
        records come back as active on load.
        """
        path = self._path(name)
        records = self.store.get_master_data() if include_deleted else self.store.get_data()
        info = SnapshotInfo(name=name, saved_at=now_iso(), count=len(records))

        payload: Dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "saved_at": info.saved_at,
            "count": info.count,
            "records": records,
        }
        try:
            self.storage.write_bytes(path, json.dumps(payload, indent=2, default=str).encode("utf-8"))
        except Exception:
            logger.exception("Failed to persist snapshot %s", name)
            return None

        logger.info("Snapshot saved", extra={"snapshot": name, "count": info.count})
        return info

    def load_snapshot(self, name: str) -> Optional[int]:
        """
        Replace the store contents with a saved snapshot.

        :return: number of records loaded, or None if the snapshot is missing or unreadable
        """
        path = self._path(name)
        if not self.storage.exists(path):
            logger.warning("Snapshot not found", extra={"snapshot": name})
            return None

        try:
            data = json.loads(self.storage.read_bytes(path))
        except Exception:
            logger.exception("Failed to load snapshot %s", name)
            return None

        records = data.get("records") if isinstance(data, dict) else data
        self.store.set_data(records)
        return self.store.get_stats().master_count

    def list_snapshots(self) -> List[str]:
        return [
            path.rsplit("/", 1)[-1][: -len(".json")]
            for path in self.storage.list_files(SNAPSHOT_DIR, ".json")
        ]

    def delete_snapshot(self, name: str) -> bool:
        return self.storage.delete(self._path(name))
