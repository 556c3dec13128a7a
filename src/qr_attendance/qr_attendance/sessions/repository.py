from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import Session


class SessionRepository(Protocol):
    """Port for session storage.

    Note (DIP): services depend on this interface, not on a concrete database.
    """

    def add(self, session: Session) -> None:
        raise NotImplementedError

    def get(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    def mark_closed(self, session_id: str, *, closed_at: datetime) -> bool:
        """Flip an active session to inactive. Returns False if it was already closed."""

        raise NotImplementedError

    def list_active(self) -> Sequence[Session]:
        raise NotImplementedError

    def list_active_ending_before(self, cutoff: datetime) -> Sequence[Session]:
        raise NotImplementedError
