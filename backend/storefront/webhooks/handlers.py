# webhooks/handlers.py
# ============================================================================
# STOREFRONT PAYMENTS — WEBHOOK EVENT HANDLERS
# ============================================================================
# Every handler is safe to run twice for the same event: state changes are
# "set status" writes, and notifications fire only on an actual transition.
# ============================================================================

from typing import Any, Dict

import structlog

from storefront.schemas.models import OrderStatus
from storefront.services.notifications import INotifier
from storefront.services.orders import IOrderStatusStore
from storefront.webhooks.router import WebhookEvent, WebhookEventKind, WebhookRouter


class PaymentEventHandlers:
    """Registers the storefront's handlers on a WebhookRouter."""

    def __init__(self, orders: IOrderStatusStore, notifier: INotifier):
        self.orders = orders
        self.notifier = notifier
        self._logger = structlog.get_logger().bind(component="webhook_handlers")

    def register(self, router: WebhookRouter) -> WebhookRouter:
        router.register(WebhookEventKind.PAYMENT_SUCCEEDED)(self.on_payment_succeeded)
        router.register(WebhookEventKind.PAYMENT_FAILED)(self.on_payment_failed)
        router.register(WebhookEventKind.CHARGE_SUCCEEDED)(self.on_charge_succeeded)
        router.register(WebhookEventKind.TRANSFER_CREATED)(self.on_transfer)
        router.register(WebhookEventKind.TRANSFER_PAID)(self.on_transfer)
        router.register(WebhookEventKind.PAYOUT_CREATED)(self.on_payout)
        router.register(WebhookEventKind.PAYOUT_PAID)(self.on_payout)
        router.register(WebhookEventKind.PAYOUT_FAILED)(self.on_payout_failed)
        router.register(WebhookEventKind.ACCOUNT_UPDATED)(self.on_account_updated)
        router.register(WebhookEventKind.CHECKOUT_COMPLETED)(self.on_checkout_completed)
        return router

    async def on_payment_succeeded(self, event: WebhookEvent) -> Dict[str, Any]:
        intent = event.data_object
        intent_id = intent.get("id")
        amount = intent.get("amount")
        currency = intent.get("currency")
        metadata = intent.get("metadata") or {}

        if not intent_id:
            self._logger.warning("payment_event_without_intent", event_id=event.id)
            return {"status": "ignored"}

        transfer = intent.get("transfer_data") or {}
        if transfer.get("amount") is not None and amount is not None:
            self._logger.info(
                "payment_distribution",
                payment_intent_id=intent_id,
                total=amount,
                platform_fee=amount - transfer["amount"],
                seller_receives=transfer["amount"],
                destination=transfer.get("destination"),
                currency=currency,
            )
        elif intent.get("application_fee_amount") is not None:
            self._logger.info(
                "payment_distribution",
                payment_intent_id=intent_id,
                total=amount,
                platform_fee=intent["application_fee_amount"],
                currency=currency,
            )

        previous = await self.orders.set_status(
            intent_id, OrderStatus.PAID, amount=amount, currency=currency
        )
        if previous != OrderStatus.PAID:
            await self.notifier.send_payment_confirmation(intent_id, amount, currency, metadata)

        self._logger.info("payment_succeeded", payment_intent_id=intent_id, amount=amount)
        return {"status": "paid", "payment_intent_id": intent_id}

    async def on_payment_failed(self, event: WebhookEvent) -> Dict[str, Any]:
        intent = event.data_object
        intent_id = intent.get("id")
        error = intent.get("last_payment_error") or {}
        reason = error.get("message")

        if not intent_id:
            self._logger.warning("payment_event_without_intent", event_id=event.id)
            return {"status": "ignored"}

        previous = await self.orders.set_status(
            intent_id, OrderStatus.PAYMENT_FAILED, last_error=reason
        )
        if previous not in (OrderStatus.PAYMENT_FAILED, OrderStatus.PAID):
            await self.notifier.send_payment_failure(intent_id, reason, intent.get("metadata") or {})

        self._logger.warning(
            "payment_failed",
            payment_intent_id=intent_id,
            error_code=error.get("code"),
            decline_code=error.get("decline_code"),
        )
        return {"status": "failed", "payment_intent_id": intent_id}

    async def on_charge_succeeded(self, event: WebhookEvent) -> None:
        charge = event.data_object
        self._logger.info(
            "charge_succeeded",
            charge_id=charge.get("id"),
            amount=charge.get("amount"),
            transfer=charge.get("transfer"),
        )

    async def on_transfer(self, event: WebhookEvent) -> None:
        transfer = event.data_object
        self._logger.info(
            "seller_transfer",
            event_type=event.type,
            transfer_id=transfer.get("id"),
            amount=transfer.get("amount"),
            destination=transfer.get("destination"),
        )

    async def on_payout(self, event: WebhookEvent) -> None:
        payout = event.data_object
        self._logger.info(
            "seller_payout",
            event_type=event.type,
            payout_id=payout.get("id"),
            amount=payout.get("amount"),
            arrival_date=payout.get("arrival_date"),
            account=event.account,
        )

    async def on_payout_failed(self, event: WebhookEvent) -> None:
        payout = event.data_object
        self._logger.error(
            "seller_payout_failed",
            payout_id=payout.get("id"),
            amount=payout.get("amount"),
            failure_code=payout.get("failure_code"),
            account=event.account,
        )

    async def on_account_updated(self, event: WebhookEvent) -> None:
        account = event.data_object
        self._logger.info(
            "seller_account_updated",
            account_id=account.get("id"),
            charges_enabled=account.get("charges_enabled"),
            payouts_enabled=account.get("payouts_enabled"),
        )

    async def on_checkout_completed(self, event: WebhookEvent) -> None:
        session = event.data_object
        self._logger.info(
            "checkout_completed",
            checkout_session_id=session.get("id"),
            payment_intent_id=session.get("payment_intent"),
            amount_total=session.get("amount_total"),
        )
