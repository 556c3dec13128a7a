import threading
from datetime import datetime, timedelta, timezone

import pytest

from qr_attendance.audit.memory_audit_log import InMemoryAuditLog
from qr_attendance.core.enums import AuditAction, RedemptionOutcome, RedemptionStatus
from qr_attendance.core.exceptions import RedemptionNotFoundError, StoreUnavailableError, ValidationError
from qr_attendance.redemptions.memory_redemption_ledger import InMemoryRedemptionLedger
from qr_attendance.redemptions.model import RedemptionState

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def _ledger():
    audit = InMemoryAuditLog()
    return audit, InMemoryRedemptionLedger(audit)


def test_try_insert_accepted_is_at_most_once_per_key():
    _, ledger = _ledger()
    first = ledger.try_insert_accepted("s-1", "alice", T0)
    again = ledger.try_insert_accepted("s-1", "alice", T0 + timedelta(seconds=1))
    other = ledger.try_insert_accepted("s-1", "bob", T0)
    other_session = ledger.try_insert_accepted("s-2", "alice", T0)

    assert first is not None and first.is_accepted
    assert again is None
    assert other is not None and other_session is not None
    assert len({first.redemption_id, other.redemption_id, other_session.redemption_id}) == 3


def test_rejected_records_do_not_block_acceptance():
    _, ledger = _ledger()
    ledger.record_rejected("s-1", "alice", T0, RedemptionOutcome.EXPIRED)
    assert ledger.try_insert_accepted("s-1", "alice", T0) is not None


def test_record_rejected_refuses_accepted_reason():
    _, ledger = _ledger()
    with pytest.raises(ValueError):
        ledger.record_rejected("s-1", "alice", T0, RedemptionOutcome.ACCEPTED)


def test_override_create_writes_record_and_one_audit_entry():
    audit, ledger = _ledger()
    entry = ledger.admin_override(
        actor_id="admin",
        redemption_id=None,
        new_state=RedemptionState(session_id="s-1", redeemer_id="alice", redeemed_at=T0),
        reason="Máy quét hỏng, điểm danh thủ công",
        now=T0,
    )

    assert entry.action == AuditAction.CREATE
    assert entry.before is None
    assert entry.after["redeemer_id"] == "alice"
    assert ledger.find_accepted("s-1", "alice").redemption_id == entry.target_redemption_id
    assert len(audit) == 1


def test_override_edit_snapshots_before_and_after():
    audit, ledger = _ledger()
    rec = ledger.try_insert_accepted("s-1", "alice", T0)

    entry = ledger.admin_override(
        actor_id="admin",
        redemption_id=rec.redemption_id,
        new_state=RedemptionState(
            session_id="s-1",
            redeemer_id="alice",
            redeemed_at=T0,
            status=RedemptionStatus.REJECTED,
            reason=RedemptionOutcome.OUTSIDE_WINDOW,
        ),
        reason="Quét hộ",
        now=T0 + timedelta(hours=1),
    )

    assert entry.action == AuditAction.EDIT
    assert entry.before["status"] == "ACCEPTED"
    assert entry.after["status"] == "REJECTED"
    assert ledger.find_accepted("s-1", "alice") is None
    assert ledger.try_insert_accepted("s-1", "alice", T0) is not None
    assert audit.list_entries(target_redemption_id=rec.redemption_id) == [entry]


def test_override_delete_removes_record():
    audit, ledger = _ledger()
    rec = ledger.try_insert_accepted("s-1", "alice", T0)

    entry = ledger.admin_override(actor_id="admin", redemption_id=rec.redemption_id, new_state=None, reason="Trùng", now=T0)

    assert entry.action == AuditAction.DELETE
    assert entry.after is None
    assert ledger.get(rec.redemption_id) is None
    assert ledger.find_accepted("s-1", "alice") is None
    assert len(audit) == 1


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_empty_reason_changes_nothing(reason):
    audit, ledger = _ledger()
    rec = ledger.try_insert_accepted("s-1", "alice", T0)

    with pytest.raises(ValidationError):
        ledger.admin_override(actor_id="admin", redemption_id=rec.redemption_id, new_state=None, reason=reason, now=T0)

    assert ledger.get(rec.redemption_id) == rec
    assert len(audit) == 0


def test_unknown_redemption_id_is_reported():
    audit, ledger = _ledger()
    with pytest.raises(RedemptionNotFoundError):
        ledger.admin_override(actor_id="admin", redemption_id=99, new_state=None, reason="x", now=T0)
    assert len(audit) == 0


def test_override_cannot_create_second_accepted_record():
    audit, ledger = _ledger()
    ledger.try_insert_accepted("s-1", "alice", T0)

    with pytest.raises(ValidationError):
        ledger.admin_override(
            actor_id="admin",
            redemption_id=None,
            new_state=RedemptionState(session_id="s-1", redeemer_id="alice", redeemed_at=T0),
            reason="again",
            now=T0,
        )
    assert len(ledger.list_for_session("s-1")) == 1
    assert len(audit) == 0


def test_admin_create_racing_a_scan_leaves_one_accepted_record():
    for i in range(200):
        audit, ledger = _ledger()
        redeemer = f"r-{i}"
        barrier = threading.Barrier(2)
        outcome = {}

        def scan():
            barrier.wait()
            outcome["scan"] = ledger.try_insert_accepted("s-1", redeemer, T0)

        def correct():
            barrier.wait()
            try:
                outcome["admin"] = ledger.admin_override(
                    actor_id="admin",
                    redemption_id=None,
                    new_state=RedemptionState(session_id="s-1", redeemer_id=redeemer, redeemed_at=T0),
                    reason="Bổ sung điểm danh",
                    now=T0,
                )
            except ValidationError:
                outcome["admin"] = None

        threads = [threading.Thread(target=scan), threading.Thread(target=correct)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        accepted = ledger.list_for_session("s-1", status=RedemptionStatus.ACCEPTED)
        assert len(accepted) == 1
        assert (outcome["scan"] is None) != (outcome["admin"] is None)
        assert len(audit) == (1 if outcome["admin"] is not None else 0)


def test_rejected_state_needs_reason_code():
    _, ledger = _ledger()
    with pytest.raises(ValidationError):
        ledger.admin_override(
            actor_id="admin",
            redemption_id=None,
            new_state=RedemptionState(
                session_id="s-1", redeemer_id="alice", redeemed_at=T0, status=RedemptionStatus.REJECTED
            ),
            reason="x",
            now=T0,
        )


class FailingAuditLog:
    def append(self, entry):
        raise StoreUnavailableError("audit store down")

    def list_entries(self, *, start=None, end=None, target_redemption_id=None):
        return []


def test_failed_audit_append_leaves_ledger_untouched():
    ledger = InMemoryRedemptionLedger(FailingAuditLog())
    rec = ledger.try_insert_accepted("s-1", "alice", T0)

    with pytest.raises(StoreUnavailableError):
        ledger.admin_override(actor_id="admin", redemption_id=rec.redemption_id, new_state=None, reason="x", now=T0)

    assert ledger.get(rec.redemption_id) == rec
    assert ledger.find_accepted("s-1", "alice") == rec
