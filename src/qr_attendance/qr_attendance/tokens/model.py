from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class TokenClaims:
    """Claims carried by a QR token. Never stored; checked against live state."""

    session_id: str
    issued_at: datetime
    expires_at: datetime
    nonce: bytes

    def is_expired(self, now: datetime, *, tolerance: timedelta) -> bool:
        return now > self.expires_at + tolerance


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    claims: TokenClaims
