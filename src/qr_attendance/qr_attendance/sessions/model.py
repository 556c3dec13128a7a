from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class Session:
    """Thực thể miền (domain): Phiên điểm danh bằng QR."""

    session_id: str
    owner_id: str
    created_at: datetime
    window_start: datetime
    window_end: datetime
    is_active: bool = True
    closed_at: Optional[datetime] = None

    def within_window(self, now: datetime, *, tolerance: timedelta = timedelta(0)) -> bool:
        return self.window_start - tolerance <= now <= self.window_end + tolerance

    def closed(self, at: datetime) -> "Session":
        return replace(self, is_active=False, closed_at=at)
