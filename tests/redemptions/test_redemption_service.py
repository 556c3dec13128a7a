import base64
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from qr_attendance.audit.memory_audit_log import InMemoryAuditLog
from qr_attendance.common.clock import FrozenClock
from qr_attendance.core.enums import RedemptionOutcome, RedemptionStatus
from qr_attendance.core.exceptions import StoreUnavailableError, ValidationError
from qr_attendance.redemptions.memory_redemption_ledger import InMemoryRedemptionLedger
from qr_attendance.redemptions.service import RedemptionService
from qr_attendance.security.signer import HmacSigner
from qr_attendance.sessions.memory_session_repository import InMemorySessionRepository
from qr_attendance.sessions.service import SessionRegistry
from qr_attendance.tokens.codec import TokenCodec
from qr_attendance.tokens.service import IssuanceService

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
SECRET = b"k" * 32


class Env:
    def __init__(self, *, skew=timedelta(0), record_rejections=False, ledger=None):
        self.clock = FrozenClock(T0, skew_tolerance=skew)
        self.sessions = InMemorySessionRepository()
        self.registry = SessionRegistry(self.sessions, clock=self.clock)
        self.codec = TokenCodec(HmacSigner(SECRET))
        self.ledger = ledger or InMemoryRedemptionLedger(InMemoryAuditLog())
        self.issuer = IssuanceService(self.sessions, self.codec, clock=self.clock, rotation_interval=timedelta(seconds=60))
        self.redeemer = RedemptionService(
            self.codec, self.sessions, self.ledger, clock=self.clock, record_rejections=record_rejections
        )
        self.session = self.registry.create("lecturer-1", T0, T0 + timedelta(minutes=5), session_id="s-1")


def _at(h, m, s=0):
    return datetime(2026, 3, 2, h, m, s, tzinfo=timezone.utc)


def test_documented_scenario():
    env = Env()
    t1 = env.issuer.issue("s-1", now=_at(9, 0))
    assert t1.expires_at == _at(9, 1)

    assert env.redeemer.redeem(t1.token, "alice", now=_at(9, 0, 30)).outcome == RedemptionOutcome.ACCEPTED
    assert env.redeemer.redeem(t1.token, "alice", now=_at(9, 0, 45)).outcome == RedemptionOutcome.ALREADY_REDEEMED

    t2 = env.codec.encode("s-1", _at(9, 0), _at(9, 1), b"\x02" * 16)
    assert env.redeemer.redeem(t2, "bob", now=_at(9, 1, 30)).outcome == RedemptionOutcome.EXPIRED


def test_accepted_result_carries_record_and_claims():
    env = Env()
    issued = env.issuer.issue("s-1")
    result = env.redeemer.redeem(issued.token, "alice")

    assert result.accepted
    assert result.claims == issued.claims
    assert result.record.status == RedemptionStatus.ACCEPTED
    assert env.ledger.find_accepted("s-1", "alice") == result.record


def test_expired_wins_over_every_later_check():
    env = Env()
    token = env.issuer.issue("s-1").token
    env.registry.close("s-1")
    assert env.redeemer.redeem(token, "alice", now=_at(9, 2)).outcome == RedemptionOutcome.EXPIRED


def test_skew_tolerance_extends_expiry():
    env = Env(skew=timedelta(seconds=5))
    token = env.issuer.issue("s-1").token
    assert env.redeemer.redeem(token, "alice", now=_at(9, 1, 5)).outcome == RedemptionOutcome.ACCEPTED
    assert env.redeemer.redeem(token, "bob", now=_at(9, 1, 6)).outcome == RedemptionOutcome.EXPIRED


def test_every_single_bit_flip_in_signature_is_malformed():
    env = Env()
    token = env.issuer.issue("s-1").token
    raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
    sig_start = len(raw) - 32

    for bit in range((len(raw) - sig_start) * 8):
        flipped = bytearray(raw)
        flipped[sig_start + bit // 8] ^= 1 << (bit % 8)
        forged = base64.urlsafe_b64encode(bytes(flipped)).rstrip(b"=").decode("ascii")
        assert env.redeemer.redeem(forged, "alice").outcome == RedemptionOutcome.MALFORMED

    assert env.ledger.find_accepted("s-1", "alice") is None


def test_garbage_token_is_malformed():
    env = Env()
    assert env.redeemer.redeem("OFFICE_CHECKIN_SYSTEM", "alice").outcome == RedemptionOutcome.MALFORMED


def test_unknown_session():
    env = Env()
    token = env.codec.encode("ghost", T0, T0 + timedelta(seconds=60), b"\x01" * 16)
    assert env.redeemer.redeem(token, "alice").outcome == RedemptionOutcome.UNKNOWN_SESSION


def test_closing_mid_window_rejects_unexpired_tokens():
    env = Env()
    token = env.issuer.issue("s-1").token
    env.clock.advance(timedelta(seconds=10))
    env.registry.close("s-1")

    assert env.redeemer.redeem(token, "alice").outcome == RedemptionOutcome.SESSION_CLOSED
    assert env.redeemer.redeem(token, "bob").outcome == RedemptionOutcome.SESSION_CLOSED


def test_token_valid_but_before_window_is_outside_window():
    env = Env()
    env.registry.create("lecturer-1", _at(10, 0), _at(10, 5), session_id="later")
    token = env.codec.encode("later", _at(9, 0), _at(9, 1), b"\x01" * 16)
    assert env.redeemer.redeem(token, "alice", now=_at(9, 0, 30)).outcome == RedemptionOutcome.OUTSIDE_WINDOW


def test_window_end_widened_by_skew_is_inclusive():
    env = Env(skew=timedelta(seconds=5))
    # Expiry lies beyond the window so only the window check can reject.
    token = env.codec.encode("s-1", _at(9, 4, 30), _at(9, 7), b"\x03" * 16)
    edge = _at(9, 5, 5)

    assert env.redeemer.redeem(token, "alice", now=edge).outcome == RedemptionOutcome.ACCEPTED
    late = env.redeemer.redeem(token, "bob", now=edge + timedelta(microseconds=1))
    assert late.outcome == RedemptionOutcome.OUTSIDE_WINDOW


def test_window_start_widened_by_skew_is_inclusive():
    env = Env(skew=timedelta(seconds=5))
    env.registry.create("lecturer-1", _at(10, 0), _at(10, 5), session_id="later")
    token = env.codec.encode("later", _at(9, 59), _at(10, 1), b"\x04" * 16)
    edge = _at(9, 59, 55)

    early = env.redeemer.redeem(token, "alice", now=edge - timedelta(microseconds=1))
    assert early.outcome == RedemptionOutcome.OUTSIDE_WINDOW
    assert env.redeemer.redeem(token, "alice", now=edge).outcome == RedemptionOutcome.ACCEPTED


def test_two_tokens_same_redeemer_counts_once_but_other_redeemers_succeed():
    env = Env()
    first = env.issuer.issue("s-1")
    env.clock.advance(timedelta(seconds=20))
    second = env.issuer.issue("s-1")

    assert env.redeemer.redeem(first.token, "alice").accepted
    assert env.redeemer.redeem(second.token, "alice").outcome == RedemptionOutcome.ALREADY_REDEEMED
    assert env.redeemer.redeem(first.token, "bob").accepted
    assert env.redeemer.redeem(second.token, "carol").accepted
    assert len(env.ledger.list_for_session("s-1", status=RedemptionStatus.ACCEPTED)) == 3


def test_concurrent_redemptions_accept_exactly_once():
    env = Env()
    token = env.issuer.issue("s-1").token
    n = 32
    barrier = threading.Barrier(n)

    def attempt(_):
        barrier.wait()
        return env.redeemer.redeem(token, "alice").outcome

    with ThreadPoolExecutor(max_workers=n) as pool:
        outcomes = list(pool.map(attempt, range(n)))

    assert outcomes.count(RedemptionOutcome.ACCEPTED) == 1
    assert outcomes.count(RedemptionOutcome.ALREADY_REDEEMED) == n - 1
    assert len(env.ledger.list_for_session("s-1")) == 1


def test_concurrent_redemptions_for_different_redeemers_all_succeed():
    env = Env()
    token = env.issuer.issue("s-1").token

    with ThreadPoolExecutor(max_workers=16) as pool:
        outcomes = list(pool.map(lambda i: env.redeemer.redeem(token, f"student-{i}").outcome, range(64)))

    assert outcomes == [RedemptionOutcome.ACCEPTED] * 64


def test_rejections_are_recorded_without_counting_toward_uniqueness():
    env = Env(record_rejections=True)
    token = env.issuer.issue("s-1").token

    env.redeemer.redeem("garbage", "alice")
    assert env.redeemer.redeem(token, "alice", now=_at(9, 2)).outcome == RedemptionOutcome.EXPIRED
    assert env.redeemer.redeem(token, "alice").accepted
    dup = env.redeemer.redeem(token, "alice")

    assert dup.outcome == RedemptionOutcome.ALREADY_REDEEMED
    assert dup.record.status == RedemptionStatus.REJECTED
    rejected = env.ledger.list_for_session("s-1", status=RedemptionStatus.REJECTED)
    assert [r.reason for r in rejected] == [RedemptionOutcome.ALREADY_REDEEMED, RedemptionOutcome.EXPIRED]
    assert len(env.ledger.list_for_session("s-1", status=RedemptionStatus.ACCEPTED)) == 1


def test_empty_redeemer_is_caller_error():
    env = Env()
    token = env.issuer.issue("s-1").token
    with pytest.raises(ValidationError):
        env.redeemer.redeem(token, " ")


def test_redeemer_id_longer_than_its_column_is_caller_error():
    env = Env()
    token = env.issuer.issue("s-1").token
    with pytest.raises(ValidationError):
        env.redeemer.redeem(token, "a" * 129)

    assert env.redeemer.redeem(token, "a" * 128).accepted


class UnreachableLedger:
    def try_insert_accepted(self, session_id, redeemer_id, timestamp):
        raise StoreUnavailableError("ledger down")


def test_store_failure_propagates_instead_of_already_redeemed():
    env = Env(ledger=UnreachableLedger())
    token = env.issuer.issue("s-1").token
    with pytest.raises(StoreUnavailableError):
        env.redeemer.redeem(token, "alice")


def test_only_time_based_rejections_are_retryable():
    retryable = {o for o in RedemptionOutcome if o.retryable}
    assert retryable == {RedemptionOutcome.EXPIRED, RedemptionOutcome.OUTSIDE_WINDOW}
    assert not RedemptionOutcome.ALREADY_REDEEMED.retryable


def test_rejection_log_says_whether_a_rescan_can_help(caplog):
    env = Env()
    token = env.issuer.issue("s-1").token

    logger = logging.getLogger("qr_attendance.redemption")
    logger.addHandler(caplog.handler)
    try:
        with caplog.at_level(logging.INFO, logger=logger.name):
            env.redeemer.redeem(token, "alice", now=_at(9, 2))
            env.redeemer.redeem("garbage", "alice")
    finally:
        logger.removeHandler(caplog.handler)

    messages = [r.getMessage() for r in caplog.records]
    assert any("(EXPIRED)" in m and "retryable=True" in m for m in messages)
    assert any("(MALFORMED)" in m and "retryable=False" in m for m in messages)
    assert token not in " ".join(messages)
