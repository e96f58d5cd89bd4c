# services/notifications.py
# ============================================================================
# STOREFRONT PAYMENTS — CUSTOMER NOTIFICATIONS
# ============================================================================
# Email delivery is an external collaborator. Handlers call INotifier only
# after an order's status actually changed, so a redelivered event never
# sends a second confirmation.
# ============================================================================

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog


class INotifier(ABC):
    @abstractmethod
    async def send_payment_confirmation(
        self,
        payment_intent_id: str,
        amount: int,
        currency: str,
        metadata: Dict[str, Any],
    ) -> None:
        pass

    @abstractmethod
    async def send_payment_failure(
        self,
        payment_intent_id: str,
        reason: Optional[str],
        metadata: Dict[str, Any],
    ) -> None:
        pass


class LoggingNotifier(INotifier):
    """Records notifications in the log instead of sending email."""

    def __init__(self):
        self._logger = structlog.get_logger().bind(component="notifier")

    async def send_payment_confirmation(self, payment_intent_id, amount, currency, metadata):
        self._logger.info(
            "payment_confirmation_queued",
            payment_intent_id=payment_intent_id,
            amount=amount,
            currency=currency,
            session_id=metadata.get("sessionId"),
        )

    async def send_payment_failure(self, payment_intent_id, reason, metadata):
        self._logger.info(
            "payment_failure_notice_queued",
            payment_intent_id=payment_intent_id,
            reason=reason,
            session_id=metadata.get("sessionId"),
        )
