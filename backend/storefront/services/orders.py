# services/orders.py
# ============================================================================
# STOREFRONT PAYMENTS — ORDER STATUS STORE
# ============================================================================
# Order persistence belongs to an external database. The webhook handlers
# only need an idempotent "set status" operation, defined here with an
# in-memory implementation for single-process deployments and tests.
# ============================================================================

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from storefront.schemas.models import OrderRecord, OrderStatus


class IOrderStatusStore(ABC):
    """Order status persistence interface."""

    @abstractmethod
    async def get(self, payment_intent_id: str) -> Optional[OrderRecord]:
        pass

    @abstractmethod
    async def set_status(
        self,
        payment_intent_id: str,
        status: OrderStatus,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
        last_error: Optional[str] = None,
    ) -> Optional[OrderStatus]:
        """Set the status and return the previous one (None if the order was new)."""
        pass


class InMemoryOrderStatusStore(IOrderStatusStore):
    def __init__(self):
        self._orders: Dict[str, OrderRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, payment_intent_id: str) -> Optional[OrderRecord]:
        async with self._lock:
            return self._orders.get(payment_intent_id)

    async def set_status(
        self,
        payment_intent_id: str,
        status: OrderStatus,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
        last_error: Optional[str] = None,
    ) -> Optional[OrderStatus]:
        async with self._lock:
            existing = self._orders.get(payment_intent_id)
            previous = existing.status if existing else None

            # A paid order never moves back to failed on a late event.
            if previous == OrderStatus.PAID and status != OrderStatus.PAID:
                return previous

            self._orders[payment_intent_id] = OrderRecord(
                payment_intent_id=payment_intent_id,
                status=status,
                amount=amount if amount is not None else (existing.amount if existing else None),
                currency=currency or (existing.currency if existing else None),
                last_error=last_error,
                updated_at=datetime.now(timezone.utc),
            )
            return previous
