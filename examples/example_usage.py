"""Ví dụ: dùng service layer trực tiếp (không qua tầng HTTP).

Tạo phiên, phát token QR, quét hai lần và chỉnh sửa thủ công có ghi nhật ký.
"""

from datetime import timedelta

from qr_attendance.core.enums import Role
from qr_attendance.main import create_container


def main():
    container = create_container()
    now = container.clock.now()

    session = container.session_registry.create("lecturer-1", now, now + timedelta(minutes=5))
    issued = container.issuance_service.issue(session.session_id)
    print("token:", issued.token, "expires:", issued.expires_at.isoformat())

    print(container.redemption_service.redeem(issued.token, "alice").outcome.value)
    print(container.redemption_service.redeem(issued.token, "alice").outcome.value)

    entry = container.admin_service.add_redemption(
        current_role=Role.ADMIN,
        actor_id="admin",
        session_id=session.session_id,
        redeemer_id="bob",
        reason="Quên mang điện thoại",
    )
    print("audit:", entry.action.value, entry.after)


if __name__ == "__main__":
    main()
