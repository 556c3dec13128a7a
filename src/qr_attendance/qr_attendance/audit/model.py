from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

from ..core.enums import AuditAction

Snapshot = Mapping[str, Any]


def freeze_snapshot(value: Optional[Snapshot]) -> Optional[Snapshot]:
    """Read-only copy of a snapshot; stored entries must not change after append."""
    if value is None:
        return None
    return MappingProxyType(
        {k: freeze_snapshot(v) if isinstance(v, Mapping) else v for k, v in dict(value).items()}
    )


@dataclass(frozen=True)
class NewAuditEntry:
    """Audit entry before the log assigns it an id."""

    actor_id: str
    action: AuditAction
    target_redemption_id: int
    before: Optional[Snapshot]
    after: Optional[Snapshot]
    reason: str
    created_at: datetime


@dataclass(frozen=True)
class AuditEntry:
    """Bản ghi nhật ký chỉnh sửa thủ công (chỉ ghi thêm, không sửa/xoá)."""

    entry_id: int
    actor_id: str
    action: AuditAction
    target_redemption_id: int
    before: Optional[Snapshot]
    after: Optional[Snapshot]
    reason: str
    created_at: datetime

    @classmethod
    def from_new(cls, entry_id: int, entry: NewAuditEntry) -> "AuditEntry":
        return cls(
            entry_id=entry_id,
            actor_id=entry.actor_id,
            action=entry.action,
            target_redemption_id=entry.target_redemption_id,
            before=freeze_snapshot(entry.before),
            after=freeze_snapshot(entry.after),
            reason=entry.reason,
            created_at=entry.created_at,
        )
