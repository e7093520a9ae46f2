from __future__ import annotations

import copy
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

ID_KEY = "id"
MODIFIED_KEY = "modified"

# Keys owned by the store rather than by the record's domain attributes
RESERVED_KEYS = frozenset({ID_KEY, MODIFIED_KEY})

# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------

def generate_row_id() -> str:
    """
    Generate a unique id for a record that arrived without one, e.g. "row_1718000000000_3fa9c1b2e".
    """
    return f"row_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"

def now_iso() -> str:
    """
    Return a current UTC timestamp in ISO-8601 format.
    """
    return datetime.now(timezone.utc).isoformat()


class RecordStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


@dataclass
class StoredRecord:
    """
    A record as held by the DataStore.

    - id: unique within the master collection, immutable
    - attributes: opaque domain attributes (region, quarter, ...), only used as filter/index keys
    - modified: set on add/update, cleared on bulk load; read by external sync
    - status: ACTIVE or DELETED. Purged records leave the store entirely
    """
    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    modified: bool = False
    status: RecordStatus = RecordStatus.ACTIVE

    @property
    def is_deleted(self) -> bool:
        return self.status is RecordStatus.DELETED

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, modified: bool) -> StoredRecord:
        """
        Build a StoredRecord from an external dict, assigning an id if it has none.
        The input mapping is deep-copied, so later mutation by the caller can't leak in.
        """
        record_id = data.get(ID_KEY)
        if record_id is None or record_id == "":
            record_id = generate_row_id()

        attributes = {
            k: copy.deepcopy(v) for k, v in data.items() if k not in RESERVED_KEYS
        }
        return cls(id=str(record_id), attributes=attributes, modified=modified)

    def merged(self, partial: Mapping[str, Any]) -> StoredRecord:
        """Return a new record with partial merged into the attributes, marked modified."""
        attributes = dict(self.attributes)
        attributes.update(
            {k: copy.deepcopy(v) for k, v in partial.items() if k not in RESERVED_KEYS}
        )
        return StoredRecord(id=self.id, attributes=attributes, modified=True, status=self.status)

    def to_dict(self) -> Dict[str, Any]:
        """The persisted/external shape: {"id": ..., <attributes>..., "modified": bool}."""
        out: Dict[str, Any] = {ID_KEY: self.id}
        out.update(copy.deepcopy(self.attributes))
        out[MODIFIED_KEY] = self.modified
        return out


@dataclass(frozen=True)
class ChangeLogEntry:
    """
    One audit entry. before/after are snapshots in the external dict shape.
    """
    action: str
    id: Optional[str]
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=now_iso)


@dataclass(frozen=True)
class StoreStats:
    master_count: int
    active_count: int
    deleted_count: int
    change_log_entries: int
    pending_updates: int = 0
