"""
Webhook Verifier & Dispatcher
=============================
Entry point for processor callbacks:

1. Verify the signature over the raw request bytes (fail closed)
2. Parse into a WebhookEvent
3. Claim the event id (duplicates are acknowledged, not re-run)
4. Route to the handler for its kind

Nothing past step 1 runs for an unverified payload.
"""

from typing import Optional

import structlog
from pydantic import BaseModel

from storefront.errors import BadSignatureError, WebhookHandlerError
from storefront.payments.processor import IPaymentProcessor
from storefront.webhooks.idempotency import IProcessedEventStore, InMemoryProcessedEventStore
from storefront.webhooks.router import WebhookEvent, WebhookEventKind, WebhookRouter


class WebhookAck(BaseModel):
    received: bool = True
    type: str
    event_id: str
    duplicate: bool = False


class WebhookDispatcher:
    def __init__(
        self,
        processor: IPaymentProcessor,
        secret: Optional[str],
        router: WebhookRouter,
        processed: Optional[IProcessedEventStore] = None,
        name: str = "platform",
    ):
        self.processor = processor
        self.router = router
        self.processed = processed or InMemoryProcessedEventStore()
        self.name = name
        self._secret = secret
        self._logger = structlog.get_logger().bind(component="webhook_dispatcher", endpoint=name)

    def verify(self, raw_body: bytes, signature: Optional[str]) -> WebhookEvent:
        """Verify and parse. Raises BadSignatureError on any failure."""
        if not self._secret:
            self._logger.error("webhook_secret_missing")
            raise BadSignatureError("missing_secret")
        if not signature:
            self._logger.warning("webhook_signature_missing")
            raise BadSignatureError("missing_signature")

        try:
            payload = self.processor.verify_webhook(raw_body, signature, self._secret)
        except BadSignatureError as e:
            self._logger.warning("webhook_signature_invalid", reason=e.reason)
            raise

        return WebhookEvent.from_payload(payload)

    async def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookAck:
        event = self.verify(raw_body, signature)
        log = self._logger.bind(event_id=event.id, event_type=event.type)
        log.info("webhook_received")

        if event.kind == WebhookEventKind.UNKNOWN:
            log.info("webhook_event_unrecognized")
            return WebhookAck(type=event.type, event_id=event.id)

        if event.id and not await self.processed.claim(event.id):
            log.info("webhook_duplicate", state=await self.processed.state(event.id))
            return WebhookAck(type=event.type, event_id=event.id, duplicate=True)

        try:
            await self.router.route(event)
        except Exception as e:
            if event.id:
                await self.processed.release(event.id)
            log.error("webhook_handler_failed", error=str(e), exc_info=True)
            raise WebhookHandlerError("Webhook processing failed") from e

        if event.id:
            await self.processed.complete(event.id)
        log.info("webhook_processed")
        return WebhookAck(type=event.type, event_id=event.id)
