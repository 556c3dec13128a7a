from __future__ import annotations

from enum import Enum


class RedemptionOutcome(str, Enum):
    """Result of presenting a token; every value except ACCEPTED is a rejection."""

    ACCEPTED = "ACCEPTED"
    MALFORMED = "MALFORMED"
    EXPIRED = "EXPIRED"
    UNKNOWN_SESSION = "UNKNOWN_SESSION"
    SESSION_CLOSED = "SESSION_CLOSED"
    OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
    ALREADY_REDEEMED = "ALREADY_REDEEMED"

    @property
    def accepted(self) -> bool:
        return self is RedemptionOutcome.ACCEPTED

    @property
    def retryable(self) -> bool:
        """Client may fetch a fresh token and try again."""
        return self in {RedemptionOutcome.EXPIRED, RedemptionOutcome.OUTSIDE_WINDOW}


class RedemptionStatus(str, Enum):
    """Trạng thái lưu trong sổ điểm danh."""

    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class AuditAction(str, Enum):
    """Loại chỉnh sửa thủ công của quản trị viên."""

    CREATE = "CREATE"
    EDIT = "EDIT"
    DELETE = "DELETE"


class StoreBackend(str, Enum):
    MEMORY = "memory"
    MYSQL = "mysql"


class Role(str, Enum):
    """Vai trò người dùng dùng cho phân quyền."""

    ADMIN = "admin"
    STAFF = "staff"
