# webhooks/__init__.py
from storefront.webhooks.dispatcher import WebhookAck, WebhookDispatcher
from storefront.webhooks.handlers import PaymentEventHandlers
from storefront.webhooks.idempotency import (
    EventState,
    IProcessedEventStore,
    InMemoryProcessedEventStore,
)
from storefront.webhooks.router import WebhookEvent, WebhookEventKind, WebhookRouter

__all__ = [
    "EventState",
    "IProcessedEventStore",
    "InMemoryProcessedEventStore",
    "PaymentEventHandlers",
    "WebhookAck",
    "WebhookDispatcher",
    "WebhookEvent",
    "WebhookEventKind",
    "WebhookRouter",
]
