from __future__ import annotations

from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} không hợp lệ")
    return value.strip()


def require_max_length(value: str, max_len: int, field_name: str) -> str:
    if len(value) > max_len:
        raise ValidationError(f"{field_name} vượt quá {max_len} ký tự")
    return value


def require_secret(value: bytes | str | None, *, min_len: int) -> bytes:
    """Normalize signing key material to bytes.

    A missing or short secret is a wiring mistake, not bad user input, so this
    raises ``ValueError`` rather than ``ValidationError``.
    """
    if value is None:
        raise ValueError("signing secret is required")
    if isinstance(value, str):
        value = value.encode("utf-8")
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError("signing secret must be bytes or str")
    if len(value) < min_len:
        raise ValueError(f"signing secret must be at least {min_len} bytes")
    return bytes(value)
