from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..common.validators import require_non_empty
from .model import AuditEntry, NewAuditEntry


class AuditLog(Protocol):
    """Append-only store of administrative corrections.

    Has no update or delete method.
    """

    def append(self, entry: NewAuditEntry) -> AuditEntry:
        raise NotImplementedError

    def list_entries(
        self,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        target_redemption_id: Optional[int] = None,
    ) -> Sequence[AuditEntry]:
        raise NotImplementedError


def validate_entry(entry: NewAuditEntry) -> None:
    require_non_empty(entry.reason, "Lý do")
    require_non_empty(entry.actor_id, "Người thực hiện")
