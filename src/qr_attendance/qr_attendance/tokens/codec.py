"""Compact, signed transport encoding for token claims.

Layout of the signed payload (big-endian)::

    version   u8
    sid_len   u16   followed by sid_len bytes of UTF-8 session id
    issued    i64   microseconds since the Unix epoch (UTC)
    expires   i64   microseconds since the Unix epoch (UTC)
    nonce_len u8    followed by nonce_len random bytes

The HMAC of the payload is appended and the whole buffer is base64url encoded
without padding. Every variable field is length-prefixed, so no two claim sets
share an encoding.
"""
from __future__ import annotations

import base64
import binascii
import re
import struct
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import from_epoch_micros, to_epoch_micros
from ..core.constants import TOKEN_VERSION
from ..security.signer import HmacSigner
from .model import TokenClaims

_HEAD = struct.Struct(">BH")
_TIMES = struct.Struct(">qqB")
_TOKEN_ALPHABET = re.compile(r"[A-Za-z0-9_-]+")

MAX_SESSION_ID_BYTES = 0xFFFF
MAX_NONCE_BYTES = 0xFF


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class TokenCodec:
    def __init__(self, signer: HmacSigner):
        self._signer = signer

    def encode(self, session_id: str, issued_at: datetime, expires_at: datetime, nonce: bytes) -> str:
        sid = (session_id or "").encode("utf-8")
        if not sid:
            raise ValueError("session_id must not be empty")
        if len(sid) > MAX_SESSION_ID_BYTES:
            raise ValueError("session_id too long")
        if not nonce or len(nonce) > MAX_NONCE_BYTES:
            raise ValueError(f"nonce must be 1..{MAX_NONCE_BYTES} bytes")
        if expires_at < issued_at:
            raise ValueError("expires_at must not precede issued_at")

        payload = b"".join(
            (
                _HEAD.pack(TOKEN_VERSION, len(sid)),
                sid,
                _TIMES.pack(to_epoch_micros(issued_at), to_epoch_micros(expires_at), len(nonce)),
                bytes(nonce),
            )
        )
        signature = self._signer.sign(payload)
        return _b64(payload + signature)

    def decode(self, token: str) -> Optional[TokenClaims]:
        """Verify and parse a token; any anomaly yields None, never partial claims."""
        if not isinstance(token, str) or not _TOKEN_ALPHABET.fullmatch(token):
            return None
        try:
            raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
        except (binascii.Error, ValueError):
            return None
        # Unused low bits of the last character must be zero: one token per byte string.
        if _b64(raw) != token:
            return None

        sig_len = self._signer.digest_size
        if len(raw) <= sig_len + _HEAD.size + _TIMES.size:
            return None
        payload, signature = raw[:-sig_len], raw[-sig_len:]
        if not self._signer.verify(payload, signature):
            return None
        return _parse_payload(payload)


def _parse_payload(payload: bytes) -> Optional[TokenClaims]:
    try:
        version, sid_len = _HEAD.unpack_from(payload, 0)
        if version != TOKEN_VERSION:
            return None
        offset = _HEAD.size
        sid = payload[offset : offset + sid_len]
        if len(sid) != sid_len:
            return None
        offset += sid_len

        issued, expires, nonce_len = _TIMES.unpack_from(payload, offset)
        offset += _TIMES.size
        nonce = payload[offset : offset + nonce_len]
        if len(nonce) != nonce_len or offset + nonce_len != len(payload):
            return None

        session_id = sid.decode("utf-8")
        issued_at = from_epoch_micros(issued)
        expires_at = from_epoch_micros(expires)
    except (struct.error, UnicodeDecodeError, OverflowError, ValueError):
        return None

    if not session_id or not nonce or expires_at < issued_at:
        return None
    return TokenClaims(session_id=session_id, issued_at=issued_at, expires_at=expires_at, nonce=bytes(nonce))
