# webhooks/router.py
# ============================================================================
# STOREFRONT PAYMENTS — WEBHOOK EVENT KINDS + ROUTER
# ============================================================================
# Processor event-type strings are parsed once into WebhookEventKind. The
# router maps kinds to handlers; UNKNOWN (or any kind without a handler) is
# acknowledged and logged, never an error.
# ============================================================================

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field


class WebhookEventKind(str, Enum):
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    CHARGE_SUCCEEDED = "charge.succeeded"
    TRANSFER_CREATED = "transfer.created"
    TRANSFER_PAID = "transfer.paid"
    PAYOUT_CREATED = "payout.created"
    PAYOUT_PAID = "payout.paid"
    PAYOUT_FAILED = "payout.failed"
    ACCOUNT_UPDATED = "account.updated"
    CHECKOUT_COMPLETED = "checkout.session.completed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, event_type: Optional[str]) -> "WebhookEventKind":
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNKNOWN


class WebhookEvent(BaseModel):
    """A verified processor event."""

    id: str
    type: str
    kind: WebhookEventKind
    data_object: Dict[str, Any] = Field(default_factory=dict)
    account: Optional[str] = None
    livemode: bool = False
    created: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WebhookEvent":
        event_type = str(payload.get("type") or "unknown")
        data = payload.get("data") or {}
        data_object = data.get("object") if isinstance(data, dict) else None
        return cls(
            id=str(payload.get("id") or ""),
            type=event_type,
            kind=WebhookEventKind.parse(event_type),
            data_object=data_object if isinstance(data_object, dict) else {},
            account=payload.get("account"),
            livemode=bool(payload.get("livemode", False)),
            created=payload.get("created"),
        )


WebhookHandler = Callable[[WebhookEvent], Awaitable[Any]]


class WebhookRouter:
    """
    Maps event kinds to async handlers.

    Example:
        router = WebhookRouter()

        @router.register(WebhookEventKind.PAYOUT_PAID)
        async def on_payout(event):
            ...
    """

    def __init__(self):
        self._handlers: Dict[WebhookEventKind, WebhookHandler] = {}
        self._logger = structlog.get_logger().bind(component="webhook_router")

    def register(self, kind: WebhookEventKind):
        """Decorator to register the handler for one event kind."""
        if kind == WebhookEventKind.UNKNOWN:
            raise ValueError("unknown events are acknowledged, not handled")

        def decorator(handler: WebhookHandler) -> WebhookHandler:
            self._handlers[kind] = handler
            self._logger.debug("handler_registered", event_type=kind.value)
            return handler
        return decorator

    async def route(self, event: WebhookEvent) -> Optional[Any]:
        handler = self._handlers.get(event.kind)
        if handler is None:
            self._logger.info("webhook_unhandled", event_type=event.type, event_id=event.id)
            return None
        return await handler(event)

    @property
    def supported_events(self) -> List[str]:
        return [kind.value for kind in self._handlers]
