"""
One-time code cache with explicit time bounds.

Codes are keyed (one live code per key, e.g. per contract id), expire
after ``ttl_seconds``, cannot be re-issued within ``cooldown_seconds`` of
the previous issue, and are discarded after ``max_attempts`` wrong
guesses or one consuming verification (or an explicit ``discard``).

The cache is an injected instance, never a module-level singleton, and
reads time only from its Clock so tests can advance past expiry.
"""

import hmac
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    AcceptanceAttemptsExceededError,
    AcceptanceCodeCooldownError,
    AcceptanceCodeExpiredError,
    AcceptanceCodeInvalidError,
)

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_COOLDOWN_SECONDS = 2 * 60
DEFAULT_MAX_ATTEMPTS = 5


@dataclass
class _IssuedCode:
    code: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0


def generate_numeric_code(length: int = 6) -> str:
    """Cryptographically random numeric code without a leading zero."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


class ExpiringCodeCache:
    """Thread-safe store of short-lived one-time codes."""

    def __init__(
        self,
        clock: Clock | None = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        code_length: int = 6,
    ):
        if ttl_seconds <= 0 or max_attempts <= 0 or code_length <= 0:
            raise ValueError("ttl_seconds, max_attempts and code_length must be positive")
        self._clock = clock or SystemClock()
        self.ttl_seconds = ttl_seconds
        self.cooldown_seconds = cooldown_seconds
        self.max_attempts = max_attempts
        self.code_length = code_length
        self._codes: dict[str, _IssuedCode] = {}
        self._lock = threading.Lock()

    def issue(self, key: str) -> str:
        """Issue a fresh code for ``key``, replacing any previous one.

        Raises:
            AcceptanceCodeCooldownError: A live code was issued for ``key``
                less than ``cooldown_seconds`` ago.
        """
        now = self._clock.now()
        with self._lock:
            current = self._codes.get(key)
            if current is not None and current.expires_at > now:
                ready_at = current.issued_at + timedelta(seconds=self.cooldown_seconds)
                if ready_at > now:
                    retry_after = int((ready_at - now).total_seconds()) or 1
                    raise AcceptanceCodeCooldownError(key, retry_after)

            code = generate_numeric_code(self.code_length)
            self._codes[key] = _IssuedCode(
                code=code,
                issued_at=now,
                expires_at=now + timedelta(seconds=self.ttl_seconds),
            )
            return code

    def verify(self, key: str, code: str, consume: bool = True) -> None:
        """Check ``code`` against the live code for ``key``.

        A match consumes the code unless ``consume`` is False, in which
        case the caller discards it once the guarded work has succeeded.
        Wrong guesses count against ``max_attempts`` either way.

        Raises:
            AcceptanceCodeExpiredError: No live code for ``key``.
            AcceptanceAttemptsExceededError: Too many wrong guesses; the
                code is discarded.
            AcceptanceCodeInvalidError: Wrong code; attempts remain.
        """
        now = self._clock.now()
        with self._lock:
            current = self._codes.get(key)
            if current is None:
                raise AcceptanceCodeExpiredError(key)
            if current.expires_at <= now:
                del self._codes[key]
                raise AcceptanceCodeExpiredError(key)

            current.attempts += 1
            if current.attempts > self.max_attempts:
                del self._codes[key]
                raise AcceptanceAttemptsExceededError(key, self.max_attempts)

            if not hmac.compare_digest(current.code, str(code)):
                raise AcceptanceCodeInvalidError(key, self.max_attempts - current.attempts)

            if consume:
                del self._codes[key]
            else:
                current.attempts -= 1

    def discard(self, key: str) -> None:
        with self._lock:
            self._codes.pop(key, None)

    def purge_expired(self) -> int:
        """Drop expired codes; returns how many were removed."""
        now = self._clock.now()
        with self._lock:
            expired = [k for k, v in self._codes.items() if v.expires_at <= now]
            for key in expired:
                del self._codes[key]
            return len(expired)

    def __contains__(self, key: str) -> bool:
        now = self._clock.now()
        with self._lock:
            current = self._codes.get(key)
            return current is not None and current.expires_at > now

    def __len__(self) -> int:
        with self._lock:
            return len(self._codes)
