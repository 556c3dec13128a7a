"""HMAC signing of canonical token payloads.

The signer owns the key material. It signs with exactly one active secret and
verifies against the active secret plus any retired secrets whose grace period
has not elapsed, so tokens minted just before a rotation keep working.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from ..common.clock import Clock, SystemClock
from ..common.datetime_utils import as_utc
from ..common.validators import require_secret
from ..core.constants import APP_NAME, MIN_SECRET_BYTES

_logger = logging.getLogger(f"{APP_NAME}.signer")

RetiredKey = Tuple[bytes, Optional[datetime]]


class HmacSigner:
    digest_size = hashlib.sha256().digest_size

    def __init__(
        self,
        secret: bytes | str,
        *,
        retired: Iterable[tuple[bytes | str, Optional[datetime]]] = (),
        clock: Clock | None = None,
    ):
        self._active = require_secret(secret, min_len=MIN_SECRET_BYTES)
        self._retired: tuple[RetiredKey, ...] = tuple(
            (require_secret(s, min_len=MIN_SECRET_BYTES), as_utc(until) if until is not None else None)
            for s, until in retired
        )
        self._clock = clock or SystemClock()

    def sign(self, payload: bytes) -> bytes:
        return hmac.new(self._active, bytes(payload), hashlib.sha256).digest()

    def verify(self, payload: bytes, signature: bytes) -> bool:
        """Return True when ``signature`` matches under any usable key.

        Malformed arguments (wrong type, wrong length) are a plain mismatch.
        """
        if not isinstance(payload, (bytes, bytearray)) or not isinstance(signature, (bytes, bytearray)):
            return False
        if len(signature) != self.digest_size:
            return False

        payload = bytes(payload)
        if hmac.compare_digest(hmac.new(self._active, payload, hashlib.sha256).digest(), signature):
            return True

        if not self._retired:
            return False
        now = self._clock.now()
        for secret, until in self._retired:
            if until is not None and now > until:
                continue
            if hmac.compare_digest(hmac.new(secret, payload, hashlib.sha256).digest(), signature):
                return True
        return False

    def rotate(self, new_secret: bytes | str, *, grace: timedelta) -> "HmacSigner":
        """Return a signer using ``new_secret``; the current secret verifies until now + grace."""
        if grace < timedelta(0):
            raise ValueError("grace must not be negative")
        now = self._clock.now()
        still_valid = [(s, until) for s, until in self._retired if until is None or until >= now]
        rotated = HmacSigner(
            new_secret,
            retired=[(self._active, now + grace), *still_valid],
            clock=self._clock,
        )
        _logger.info("Signing key rotated (grace=%ss, retired_keys=%d)", int(grace.total_seconds()), len(still_valid) + 1)
        return rotated

    @property
    def retired_count(self) -> int:
        return len(self._retired)

    def __repr__(self) -> str:
        return f"HmacSigner(retired_keys={self.retired_count})"
