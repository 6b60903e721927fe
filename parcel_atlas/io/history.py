"""Rolling history of statistics snapshots."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

from .models import HistoryEntry, Stats
from .storage import ArtifactStore

logger = logging.getLogger(__name__)

INDEX_KEY = "history-index.json"
DEFAULT_RETENTION = 60  # two runs a day for thirty days


def snapshot_key(timestamp_ms: int, prefix: str = "") -> str:
    """Return ``history/{date}/{time}`` for an epoch-millisecond timestamp."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    iso = moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    date_str = iso.split("T", 1)[0]
    time_str = iso.replace(":", "-").replace(".", "-")
    return f"{prefix}history/{date_str}/{time_str}"


class HistoryStore:
    """Newest-first index of stats snapshots, truncated to *retention* entries.

    Snapshots pushed out of the index are deleted from the store as well.
    """

    def __init__(self, store: ArtifactStore, prefix: str = "", retention: int = DEFAULT_RETENTION) -> None:
        if retention < 1:
            raise ValueError("retention must be at least 1")
        self.store = store
        self.prefix = prefix
        self.retention = retention

    @property
    def index_key(self) -> str:
        return f"{self.prefix}{INDEX_KEY}"

    def entries(self) -> List[HistoryEntry]:
        payload = self.store.read_json(self.index_key)
        if not isinstance(payload, dict):
            return []
        raw_entries = payload.get("entries")
        if not isinstance(raw_entries, list):
            return []
        return [HistoryEntry.from_wire(item) for item in raw_entries if isinstance(item, dict)]

    def append(self, stats: Stats, timestamp_ms: int) -> HistoryEntry:
        """Record *stats* as the newest snapshot and prune the oldest ones."""
        key = snapshot_key(timestamp_ms, self.prefix)
        entry = HistoryEntry(timestamp=timestamp_ms, key=key, summary=stats.to_wire())
        self.store.write_json(
            f"{key}.json", entry.to_wire(), cache_control="public, max-age=31536000"
        )

        entries = [entry] + self.entries()
        kept, dropped = entries[: self.retention], entries[self.retention :]
        self.store.write_json(
            self.index_key,
            {"entries": [item.to_wire() for item in kept]},
            cache_control="public, max-age=300",
        )

        for old in dropped:
            try:
                self.store.delete(f"{old.key}.json")
            except Exception:  # noqa: BLE001 - stale snapshots are harmless
                logger.warning("Failed to delete old snapshot %s", old.key, exc_info=True)
        if dropped:
            logger.info("Pruned %d history snapshots", len(dropped))
        return entry
