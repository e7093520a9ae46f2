from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Sequence

from .batching import process_in_chunks
from .event_bus import EventBus, Events
from .records import (
    ChangeLogEntry,
    RecordStatus,
    StoredRecord,
    StoreStats,
)

logger = logging.getLogger(__name__)


class DataStore:
    """
    Owner of the master record collection.

    Includes:
    - Ordered master collection keyed by id (insertion order preserved)
    - Soft delete / restore / purge via an explicit status per record
    - Bounded change log for audit and debugging
    - One event publication per mutation through the injected EventBus

    Design Notes:
    - Records leave the store as dict copies, so neither views nor the render target can
      mutate the master collection in place
    - A mutation builds its new state first and swaps it in afterwards; failures leave the store untouched
    - Lookup failures (unknown id, wrong lifecycle state) are logged and reported as False, never raised
    """

    def __init__(
        self,
        bus: EventBus,
        *,
        change_log_capacity: int = 100,
        source: str = "campaigns",
    ) -> None:
        self._bus = bus
        self._source = source
        self._records: Dict[str, StoredRecord] = {}
        self._change_log: Deque[ChangeLogEntry] = deque(maxlen=change_log_capacity)
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._revision = 0

    # -------------------------------------------------------------------------
    # Bulk load
    # -------------------------------------------------------------------------
    def set_data(self, records: Any) -> None:
        """
        Replace the entire master collection.

        Clears deleted state and the change log, assigns ids where missing and resets the
        modified flag. Malformed input is logged and treated as an empty dataset.
        """
        rows = self._validate_rows(records)
        prepared = [StoredRecord.from_mapping(row, modified=False) for row in rows]
        self._replace(prepared)

    async def load_data_chunked(self, records: Any, chunk_size: int = 100) -> None:
        """
        Bulk import for large datasets.

        Records are normalised chunk by chunk with control handed back to the event loop
        between chunks; the store is replaced in one step at the end, so readers never see
        a half-loaded collection.
        """
        rows = self._validate_rows(records)

        def _progress(chunk_number: int, total_chunks: int) -> None:
            self._bus.publish(
                Events.BATCH_PROGRESS,
                {
                    "source": self._source,
                    "chunk": chunk_number,
                    "total_chunks": total_chunks,
                    "progress": chunk_number / total_chunks * 100,
                },
            )

        prepared = await process_in_chunks(
            rows,
            lambda row: StoredRecord.from_mapping(row, modified=False),
            chunk_size=chunk_size,
            on_progress=_progress,
        )
        self._replace(prepared)

    def _validate_rows(self, records: Any) -> List[Mapping[str, Any]]:
        if not isinstance(records, (list, tuple)):
            logger.warning(
                "set_data: invalid data provided, expected a list; treating as empty",
                extra={"source": self._source, "type": type(records).__name__},
            )
            return []

        rows: List[Mapping[str, Any]] = []
        for i, row in enumerate(records):
            if not isinstance(row, Mapping):
                logger.warning(
                    "set_data: skipping non-object row",
                    extra={"source": self._source, "position": i},
                )
                continue
            rows.append(row)
        return rows

    def _replace(self, prepared: Iterable[StoredRecord]) -> None:
        records: Dict[str, StoredRecord] = {}
        for rec in prepared:
            if rec.id in records:
                logger.warning(
                    "Duplicate id in loaded data; keeping first occurrence",
                    extra={"source": self._source, "id": rec.id},
                )
                continue
            records[rec.id] = rec

        if self._pending:
            logger.warning(
                "Dropping queued updates on bulk load",
                extra={"source": self._source, "count": len(self._pending)},
            )
            self._pending = {}

        self._records = records
        self._change_log.clear()
        self._revision += 1

        logger.info("Data loaded", extra={"source": self._source, "count": len(records)})
        self._bus.publish(Events.DATA_LOADED, {"source": self._source, "count": len(records)})

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    def get_data(self) -> List[Dict[str, Any]]:
        """Active records (master minus soft-deleted), in insertion order."""
        return [r.to_dict() for r in self._records.values() if not r.is_deleted]

    def get_master_data(self) -> List[Dict[str, Any]]:
        """Every record, including soft-deleted ones."""
        return [r.to_dict() for r in self._records.values()]

    def get_deleted_rows(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._records.values() if r.is_deleted]

    def get_record(self, record_id: str) -> Optional[Dict[str, Any]]:
        rec = self._records.get(record_id)
        return rec.to_dict() if rec is not None else None

    @property
    def deleted_ids(self) -> frozenset[str]:
        return frozenset(r.id for r in self._records.values() if r.is_deleted)

    @property
    def revision(self) -> int:
        """Bumped on every mutation and bulk load; index snapshots compare against it."""
        return self._revision

    def get_change_log(self) -> List[ChangeLogEntry]:
        return list(self._change_log)

    def get_stats(self) -> StoreStats:
        deleted = sum(1 for r in self._records.values() if r.is_deleted)
        return StoreStats(
            master_count=len(self._records),
            active_count=len(self._records) - deleted,
            deleted_count=deleted,
            change_log_entries=len(self._change_log),
            pending_updates=len(self._pending),
        )

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------
    def add_row(self, data: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Append a new record, assigning an id if absent and marking it modified.

        :return: the stored record (as a dict copy), or None if data was rejected
        """
        if not isinstance(data, Mapping):
            logger.warning(
                "add_row: expected an object",
                extra={"source": self._source, "type": type(data).__name__},
            )
            return None

        rec = StoredRecord.from_mapping(data, modified=True)
        if rec.id in self._records:
            logger.warning("add_row: id already exists", extra={"source": self._source, "id": rec.id})
            return None

        self._records[rec.id] = rec
        after = rec.to_dict()
        self._commit("add", rec.id, after=after)
        return after

    def update_row(self, record_id: str, partial: Mapping[str, Any]) -> bool:
        """
        Merge partial into the record and mark it modified. The id itself can't be changed.
        """
        current = self._records.get(record_id)
        if current is None:
            logger.warning("Row not found for update", extra={"source": self._source, "id": record_id})
            return False

        if not isinstance(partial, Mapping):
            logger.warning(
                "update_row: expected an object",
                extra={"source": self._source, "id": record_id, "type": type(partial).__name__},
            )
            return False

        updated = current.merged(partial)
        before = current.to_dict()
        self._records[record_id] = updated
        self._commit("update", record_id, before=before, after=updated.to_dict())
        return True

    def queue_update(self, record_id: str, partial: Mapping[str, Any]) -> bool:
        """
        Buffer a partial update for record_id. Repeated updates to the same id are merged
        (later keys win) and applied together by process_update_queue().
        """
        if not isinstance(partial, Mapping):
            logger.warning(
                "queue_update: expected an object",
                extra={"source": self._source, "id": record_id, "type": type(partial).__name__},
            )
            return False

        self._pending[record_id] = {**self._pending.get(record_id, {}), **partial}
        return True

    def process_update_queue(self) -> int:
        """
        Apply every queued update through update_row(), one event and one log entry per id.

        :return: number of records actually updated
        """
        pending, self._pending = self._pending, {}
        applied = sum(1 for record_id, partial in pending.items() if self.update_row(record_id, partial))
        if pending:
            logger.debug(
                "Processed update queue",
                extra={"source": self._source, "queued": len(pending), "applied": applied},
            )
        return applied

    def delete_row(self, record_id: str) -> bool:
        """Soft delete: the record stays in the master collection but leaves the active view."""
        current = self._records.get(record_id)
        if current is None:
            logger.warning("Row not found for deletion", extra={"source": self._source, "id": record_id})
            return False
        if current.is_deleted:
            logger.warning("Row already deleted", extra={"source": self._source, "id": record_id})
            return False

        before = current.to_dict()
        current.status = RecordStatus.DELETED
        self._commit("delete", record_id, before=before, after=current.to_dict())
        return True

    def restore_row(self, record_id: str) -> bool:
        current = self._records.get(record_id)
        if current is None or not current.is_deleted:
            logger.warning("Row not in deleted set", extra={"source": self._source, "id": record_id})
            return False

        current.status = RecordStatus.ACTIVE
        self._commit("restore", record_id, after=current.to_dict())
        return True

    def permanently_delete_row(self, record_id: str) -> bool:
        """
        Purge a soft-deleted record. Irreversible.

        Active records are refused: they must be deleted first, which keeps an undo window.
        """
        current = self._records.get(record_id)
        if current is None:
            logger.warning(
                "Row not found for permanent deletion", extra={"source": self._source, "id": record_id}
            )
            return False
        if not current.is_deleted:
            logger.warning(
                "Refusing to purge an active row; delete it first",
                extra={"source": self._source, "id": record_id},
            )
            return False

        del self._records[record_id]
        self._commit("permanent_delete", record_id, before=current.to_dict())
        return True

    def clear_deleted_rows(self) -> int:
        """Purge every soft-deleted record at once. Returns how many were removed."""
        purged = [r.id for r in self._records.values() if r.is_deleted]
        if not purged:
            return 0

        self._records = {rid: r for rid, r in self._records.items() if not r.is_deleted}
        self._commit("clear_deleted", None, count=len(purged))
        return len(purged)

    def clear_all_data(self) -> None:
        count = len(self._records)
        self._records = {}
        self._commit("clear_all", None, count=count)

    # -------------------------------------------------------------------------
    # Internal: change log + notification
    # -------------------------------------------------------------------------
    def _commit(
        self,
        action: str,
        record_id: Optional[str],
        *,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        count: Optional[int] = None,
    ) -> None:
        self._change_log.append(ChangeLogEntry(action=action, id=record_id, before=before, after=after))
        self._revision += 1

        payload: Dict[str, Any] = {"source": self._source, "action": action, "id": record_id}
        if count is not None:
            payload["count"] = count

        logger.debug("Store mutation", extra=payload)
        self._bus.publish(Events.DATA_UPDATED, payload)
