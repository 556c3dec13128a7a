from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..core.enums import RedemptionOutcome, RedemptionStatus
from ..tokens.model import TokenClaims


@dataclass(frozen=True)
class RedemptionRecord:
    """Thực thể miền (domain): Một lần quét QR được ghi vào sổ."""

    redemption_id: int
    session_id: str
    redeemer_id: str
    redeemed_at: datetime
    status: RedemptionStatus
    reason: RedemptionOutcome

    @property
    def key(self) -> tuple[str, str]:
        return (self.session_id, self.redeemer_id)

    @property
    def is_accepted(self) -> bool:
        return self.status == RedemptionStatus.ACCEPTED

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "redemption_id": self.redemption_id,
            "session_id": self.session_id,
            "redeemer_id": self.redeemer_id,
            "redeemed_at": self.redeemed_at.isoformat(),
            "status": self.status.value,
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class RedemptionState:
    """Target state of an administrative correction."""

    session_id: str
    redeemer_id: str
    redeemed_at: datetime
    status: RedemptionStatus = RedemptionStatus.ACCEPTED
    reason: Optional[RedemptionOutcome] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.session_id, self.redeemer_id)


@dataclass(frozen=True)
class RedemptionResult:
    """What ``RedemptionService.redeem`` returns for every business outcome."""

    outcome: RedemptionOutcome
    claims: Optional[TokenClaims] = None
    record: Optional[RedemptionRecord] = None

    @property
    def accepted(self) -> bool:
        return self.outcome == RedemptionOutcome.ACCEPTED
