"""
Payment Lock Manager
====================
Advisory per-client mutex that keeps two payment-intent requests from the
same client from running at once.

- acquire() never blocks: a live lock fails fast with LOCK_HELD
- locks older than the TTL are abandoned and reclaimed on the next acquire
  or by the periodic sweep (see tasks/lock_sweeper.py)
- release() is holder-checked and idempotent

The map is owned by one instance and mutated only from the event loop
thread, so no awaits happen while it is being changed. A multi-process
deployment needs an external store with TTL keys instead.
"""

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

import structlog

from storefront.errors import PaymentLockHeldError

DEFAULT_LOCK_TTL_SECONDS = 30.0


@dataclass(frozen=True)
class LockToken:
    client_id: str
    key: str
    holder_id: str
    acquired_at: float


class PaymentLockManager:
    """
    Example:
        locks = PaymentLockManager()
        with locks.hold(client_id):
            ...  # create the payment intent
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_LOCK_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._locks: Dict[str, LockToken] = {}
        self._logger = structlog.get_logger().bind(component="payment_locks")

    @staticmethod
    def _key(client_id: str) -> str:
        return f"payment_{client_id}"

    def _is_stale(self, token: LockToken, now: float) -> bool:
        return now - token.acquired_at > self.ttl_seconds

    def acquire(self, client_id: str) -> LockToken:
        """Take the lock for client_id or raise PaymentLockHeldError."""
        key = self._key(client_id)
        now = self._clock()

        existing = self._locks.get(key)
        if existing is not None:
            if not self._is_stale(existing, now):
                self._logger.info("payment_lock_held", client_id=client_id)
                raise PaymentLockHeldError(client_id)
            del self._locks[key]
            self._logger.warning(
                "payment_lock_reclaimed",
                client_id=client_id,
                age_seconds=round(now - existing.acquired_at, 3),
            )

        token = LockToken(
            client_id=client_id,
            key=key,
            holder_id=uuid.uuid4().hex,
            acquired_at=now,
        )
        self._locks[key] = token
        return token

    def release(self, token: Optional[LockToken]) -> bool:
        """Drop the lock if token still holds it. Never raises."""
        if token is None:
            return False
        current = self._locks.get(token.key)
        if current is None or current.holder_id != token.holder_id:
            return False
        del self._locks[token.key]
        return True

    @contextmanager
    def hold(self, client_id: str) -> Iterator[LockToken]:
        token = self.acquire(client_id)
        try:
            yield token
        finally:
            self.release(token)

    def sweep(self) -> int:
        """Delete every stale lock. Returns how many were removed."""
        now = self._clock()
        stale = [key for key, token in self._locks.items() if self._is_stale(token, now)]
        for key in stale:
            del self._locks[key]
        if stale:
            self._logger.info("payment_locks_swept", removed=len(stale))
        return len(stale)

    def is_locked(self, client_id: str) -> bool:
        token = self._locks.get(self._key(client_id))
        return token is not None and not self._is_stale(token, self._clock())

    def __len__(self) -> int:
        return len(self._locks)
