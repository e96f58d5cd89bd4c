# webhooks/idempotency.py
# ============================================================================
# STOREFRONT PAYMENTS — PROCESSED EVENT STORE
# ============================================================================
# Tracks webhook event ids so a redelivered event is acknowledged without
# re-running its handler. claim() is the SETNX equivalent; a failed handler
# releases its claim so the processor's redelivery can run it again.
# ============================================================================

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional, Tuple


class EventState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"


class IProcessedEventStore(ABC):
    @abstractmethod
    async def claim(self, event_id: str) -> bool:
        """True if the caller now owns processing of event_id."""
        pass

    @abstractmethod
    async def complete(self, event_id: str) -> None:
        pass

    @abstractmethod
    async def release(self, event_id: str) -> None:
        pass

    @abstractmethod
    async def state(self, event_id: str) -> Optional[EventState]:
        pass


class InMemoryProcessedEventStore(IProcessedEventStore):
    """Bounded by a retention window; the processor stops redelivering after days."""

    def __init__(self, retention: timedelta = timedelta(days=7)):
        self._records: Dict[str, Tuple[EventState, datetime]] = {}
        self._retention = retention
        self._lock = asyncio.Lock()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._retention
        expired = [key for key, (_, at) in self._records.items() if at < cutoff]
        for key in expired:
            del self._records[key]

    async def claim(self, event_id: str) -> bool:
        async with self._lock:
            now = datetime.now(timezone.utc)
            self._prune(now)
            if event_id in self._records:
                return False
            self._records[event_id] = (EventState.PROCESSING, now)
            return True

    async def complete(self, event_id: str) -> None:
        async with self._lock:
            self._records[event_id] = (EventState.COMPLETED, datetime.now(timezone.utc))

    async def release(self, event_id: str) -> None:
        async with self._lock:
            record = self._records.get(event_id)
            if record and record[0] == EventState.PROCESSING:
                del self._records[event_id]

    async def state(self, event_id: str) -> Optional[EventState]:
        async with self._lock:
            record = self._records.get(event_id)
            return record[0] if record else None
