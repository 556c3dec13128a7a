from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

from .audit.memory_audit_log import InMemoryAuditLog
from .audit.mysql_audit_log import MySQLAuditLog
from .audit.repository import AuditLog
from .common.clock import Clock, SystemClock
from .core.constants import DEFAULT_CLOCK_SKEW_SECONDS, DEFAULT_KEY_GRACE_SECONDS, DEFAULT_ROTATION_SECONDS
from .core.enums import StoreBackend
from .database.connection import DBConfig, DatabaseConnection
from .redemptions.admin_service import RedemptionAdminService
from .redemptions.memory_redemption_ledger import InMemoryRedemptionLedger
from .redemptions.mysql_redemption_ledger import MySQLRedemptionLedger
from .redemptions.repository import RedemptionLedger
from .redemptions.service import RedemptionService
from .security.signer import HmacSigner
from .sessions.memory_session_repository import InMemorySessionRepository
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.service import SessionRegistry
from .tokens.codec import TokenCodec
from .tokens.service import IssuanceService


@dataclass(frozen=True)
class Container:
    clock: Clock
    signer: HmacSigner
    codec: TokenCodec

    sessions_repo: SessionRepository
    ledger: RedemptionLedger
    audit_log: AuditLog

    session_registry: SessionRegistry
    issuance_service: IssuanceService
    redemption_service: RedemptionService
    admin_service: RedemptionAdminService

    conn: Optional[DatabaseConnection] = None


def build_container(
    *,
    signing_secret: bytes | str,
    previous_secrets: Sequence[bytes | str] = (),
    key_grace_seconds: int = DEFAULT_KEY_GRACE_SECONDS,
    rotation_interval_seconds: int = DEFAULT_ROTATION_SECONDS,
    clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS,
    backend: StoreBackend | str = StoreBackend.MEMORY,
    db_config: Optional[dict] = None,
    record_rejections: bool = False,
    clock: Optional[Clock] = None,
) -> Container:
    clock = clock or SystemClock(timedelta(seconds=int(clock_skew_seconds)))

    # Retired secrets from settings stay valid for one grace period after startup.
    grace_until = clock.now() + timedelta(seconds=int(key_grace_seconds))
    signer = HmacSigner(
        signing_secret,
        retired=[(s, grace_until) for s in previous_secrets],
        clock=clock,
    )
    codec = TokenCodec(signer)

    conn: Optional[DatabaseConnection] = None
    backend = StoreBackend(backend)
    if backend == StoreBackend.MYSQL:
        if not db_config:
            raise ValueError("db_config is required for the mysql backend")
        conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
        sessions_repo: SessionRepository = MySQLSessionRepository(conn)
        audit_log: AuditLog = MySQLAuditLog(conn)
        ledger: RedemptionLedger = MySQLRedemptionLedger(conn)
    else:
        sessions_repo = InMemorySessionRepository()
        audit_log = InMemoryAuditLog()
        ledger = InMemoryRedemptionLedger(audit_log)

    session_registry = SessionRegistry(sessions_repo, clock=clock)
    issuance_service = IssuanceService(
        sessions_repo,
        codec,
        clock=clock,
        rotation_interval=timedelta(seconds=int(rotation_interval_seconds)),
    )
    redemption_service = RedemptionService(
        codec,
        sessions_repo,
        ledger,
        clock=clock,
        record_rejections=record_rejections,
    )
    admin_service = RedemptionAdminService(ledger, sessions_repo, audit_log, clock=clock)

    return Container(
        clock=clock,
        signer=signer,
        codec=codec,
        sessions_repo=sessions_repo,
        ledger=ledger,
        audit_log=audit_log,
        session_registry=session_registry,
        issuance_service=issuance_service,
        redemption_service=redemption_service,
        admin_service=admin_service,
        conn=conn,
    )
