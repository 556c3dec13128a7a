from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import as_utc
from .model import AuditEntry, NewAuditEntry
from .repository import AuditLog, validate_entry


class InMemoryAuditLog(AuditLog):
    def __init__(self):
        self._entries: list[AuditEntry] = []
        self._lock = threading.RLock()

    def append(self, entry: NewAuditEntry) -> AuditEntry:
        validate_entry(entry)
        with self._lock:
            stored = AuditEntry.from_new(len(self._entries) + 1, entry)
            self._entries.append(stored)
            return stored

    def list_entries(
        self,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        target_redemption_id: Optional[int] = None,
    ) -> Sequence[AuditEntry]:
        start = as_utc(start) if start else None
        end = as_utc(end) if end else None
        with self._lock:
            items = list(self._entries)
        return [
            e
            for e in items
            if (start is None or e.created_at >= start)
            and (end is None or e.created_at <= end)
            and (target_redemption_id is None or e.target_redemption_id == int(target_redemption_id))
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
