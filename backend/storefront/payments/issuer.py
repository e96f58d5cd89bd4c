"""
Payment Intent Issuer
=====================
Orchestrates one checkout attempt:

    acquire lock -> validate cart -> cents -> fee split -> processor -> release

The lock is released on every exit path. The idempotency key is derived
from the validated cart and a short retry window, so a retried identical
request collapses onto the same processor-side intent while a later repeat
purchase gets a fresh one. A client-supplied checkout id narrows the key to
one checkout attempt.
"""

import hashlib
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from storefront.catalog.validator import CartValidator
from storefront.config import StorefrontConfig
from storefront.errors import (
    CartRejectedError,
    InvalidAmountError,
    ProcessorError,
    UnknownSellerError,
)
from storefront.payments.fees import FeeSplit, split_charge, to_minor_units
from storefront.payments.locks import PaymentLockManager
from storefront.payments.processor import IPaymentProcessor
from storefront.schemas.models import (
    ChargeMode,
    IntentResult,
    PaymentIntentRequest,
    ValidationResult,
)

# Stripe caps each metadata value at 500 characters.
METADATA_VALUE_LIMIT = 500


def build_idempotency_key(
    client_id: str,
    mode: ChargeMode,
    destination: Optional[str],
    currency: str,
    validation: ValidationResult,
    amount: int,
    window: int,
    extra: Optional[Dict[str, str]] = None,
    checkout_id: Optional[str] = None,
) -> str:
    """window is the retry bucket index; see retry_window()."""
    lines = [(line.product_id, line.quantity) for line in validation.valid_lines]
    fingerprint = json.dumps(
        {
            "client": client_id,
            "mode": mode.value,
            "destination": destination,
            "currency": currency,
            "lines": lines,
            "amount": amount,
            "extra": extra or {},
            "checkout": checkout_id,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(fingerprint.encode()).hexdigest()[:32]
    return f"pi_{digest}_{window}"


def retry_window(now: datetime, window_seconds: float) -> int:
    """Index of the fixed-size time bucket that now falls into."""
    return int(now.timestamp() // window_seconds)


def build_metadata(
    client_id: str,
    validation: ValidationResult,
    split: FeeSplit,
    mode: ChargeMode,
    platform_name: str,
    seller_account_id: Optional[str],
    extra: Optional[Dict[str, str]] = None,
    checkout_id: Optional[str] = None,
) -> Dict[str, str]:
    """Request-derived only: Stripe rejects a reused idempotency key with different params."""
    items = json.dumps(
        [
            {
                "id": line.product_id,
                "name": line.name,
                "quantity": line.quantity,
                "price": str(line.unit_price),
            }
            for line in validation.valid_lines
        ],
        separators=(",", ":"),
    )
    if len(items) > METADATA_VALUE_LIMIT:
        items = f"{len(validation.valid_lines)} line items"

    metadata = {
        "sessionId": client_id,
        "items": items,
        "itemCount": str(sum(line.quantity for line in validation.valid_lines)),
        "orderTotal": str(validation.total),
        "chargeMode": mode.value,
        "platform": platform_name,
    }
    if seller_account_id:
        metadata["seller"] = seller_account_id
    if split.platform_fee is not None:
        metadata["platformFee"] = str(split.platform_fee)
    if checkout_id:
        metadata["checkoutId"] = checkout_id[:METADATA_VALUE_LIMIT]
    for key, value in (extra or {}).items():
        metadata[key] = str(value)[:METADATA_VALUE_LIMIT]
    return metadata


class PaymentIntentIssuer:
    """
    Example:
        issuer = PaymentIntentIssuer(validator, locks, StripeProcessor(key), config)
        result = await issuer.create_intent("sess-1", [{"id": "prod-001", "quantity": 2}])
    """

    def __init__(
        self,
        validator: CartValidator,
        locks: PaymentLockManager,
        processor: IPaymentProcessor,
        config: StorefrontConfig,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.validator = validator
        self.locks = locks
        self.processor = processor
        self.config = config
        self._now = now
        self._base_logger = structlog.get_logger()

    def _get_logger(self, correlation_id: str):
        return self._base_logger.bind(component="payment_intent_issuer", correlation_id=correlation_id)

    def _resolve_destination(self, mode: ChargeMode, requested: Optional[str]) -> Optional[str]:
        if mode == ChargeMode.PLATFORM:
            return None

        configured = self.config.require_seller_account()
        if requested and requested != configured:
            raise UnknownSellerError(requested)
        return configured

    async def create_intent(
        self,
        client_id: str,
        cart_lines: List[Any],
        charge_mode: ChargeMode = ChargeMode.PLATFORM,
        *,
        seller_account_id: Optional[str] = None,
        expected_amount: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
        checkout_id: Optional[str] = None,
    ) -> IntentResult:
        correlation_id = str(uuid.uuid4())
        log = self._get_logger(correlation_id)

        # Fails fast with LOCK_HELD before the cart is even looked at.
        token = self.locks.acquire(client_id)
        try:
            log.info(
                "payment_intent_requested",
                client_id=client_id,
                charge_mode=charge_mode.value,
                line_count=len(cart_lines) if isinstance(cart_lines, list) else 0,
            )

            validation = self.validator.validate(cart_lines)
            if not validation.accepted:
                log.info(
                    "cart_rejected",
                    rejected=[
                        {"productId": line.product_id, "reason": line.reason.value}
                        for line in validation.rejected_lines
                    ],
                )
                raise CartRejectedError(validation)

            amount = to_minor_units(validation.total)
            if expected_amount is not None and expected_amount != amount:
                log.warning("amount_mismatch", expected=expected_amount, computed=amount)
                raise InvalidAmountError(
                    "Amount does not match cart total",
                    {"amount": amount},
                )

            destination = self._resolve_destination(charge_mode, seller_account_id)
            split = split_charge(
                amount,
                charge_mode,
                self.config.platform_fee_percentage,
                self.config.platform_fixed_fee,
            )

            idempotency_key = build_idempotency_key(
                client_id,
                charge_mode,
                destination,
                self.config.currency,
                validation,
                amount,
                retry_window(self._now(), self.config.payment_retry_window_seconds),
                metadata,
                checkout_id,
            )

            request = PaymentIntentRequest(
                amount_minor_units=amount,
                currency=self.config.currency,
                charge_mode=charge_mode,
                destination_account_id=destination,
                transfer_amount_minor_units=(
                    split.seller_payout if charge_mode == ChargeMode.DESTINATION else None
                ),
                platform_fee_minor_units=(
                    split.platform_fee if charge_mode == ChargeMode.APPLICATION_FEE else None
                ),
                idempotency_key=idempotency_key,
                metadata=build_metadata(
                    client_id,
                    validation,
                    split,
                    charge_mode,
                    self.config.platform_name,
                    destination,
                    metadata,
                    checkout_id,
                ),
            )

            try:
                intent = await self.processor.create_payment_intent(request)
            except ProcessorError as e:
                log.error(
                    "payment_intent_failed",
                    classification=e.kind.value,
                    processor_code=e.processor_code,
                )
                raise

            log.info(
                "payment_intent_created",
                payment_intent_id=intent.id,
                amount=amount,
                platform_fee=split.platform_fee,
                seller_payout=split.seller_payout,
                status=intent.status,
            )

            return IntentResult(
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                amount=amount,
                currency=self.config.currency,
                charge_mode=charge_mode,
                platform_fee=split.platform_fee,
                seller_payout=split.seller_payout,
                idempotency_key=idempotency_key,
                correlation_id=correlation_id,
            )
        finally:
            self.locks.release(token)
