"""Per-category storage of cached reference records."""

from collections.abc import Iterable
from typing import Optional

from ..models.records import CachedRecord, RecordId


class CategoryState:
    """
    Mapping from record id to record plus the time of the last refresh.

    ``last_refresh_at`` is None until a refresh succeeds and again after
    ``clear()``. A refreshed state may legitimately hold zero entries.
    This class does no locking; ``CategoryCache`` owns the single-writer
    discipline.
    """

    def __init__(self) -> None:
        self._entries: dict[RecordId, CachedRecord] = {}
        self.last_refresh_at: Optional[float] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._entries

    def get(self, record_id: RecordId) -> Optional[CachedRecord]:
        return self._entries.get(record_id)

    def replace(self, records: Iterable[CachedRecord], refreshed_at: float) -> None:
        """Swap in a complete new dataset (records missing upstream disappear)."""
        entries: dict[RecordId, CachedRecord] = {}
        for record in records:
            entries[record.id] = record
        self._entries = entries
        self.last_refresh_at = refreshed_at

    def upsert(self, record: CachedRecord) -> None:
        """Insert or replace a single record without touching the refresh time."""
        self._entries[record.id] = record

    def clear(self) -> None:
        self._entries = {}
        self.last_refresh_at = None

    def snapshot(self) -> list[CachedRecord]:
        """Return the records in insertion order (a copy, never the live mapping)."""
        return list(self._entries.values())
