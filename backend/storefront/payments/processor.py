# payments/processor.py
# ============================================================================
# STOREFRONT PAYMENTS — PAYMENT PROCESSOR ADAPTER
# ============================================================================
# The issuer, the webhook dispatcher and the seller account routes depend on
# IPaymentProcessor only. StripeProcessor is the production implementation;
# tests swap in a fake.
# ============================================================================

import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import stripe
import structlog

from storefront.errors import BadSignatureError, ProcessorError, ProcessorErrorKind
from storefront.schemas.models import (
    ChargeMode,
    ConnectAccountStatus,
    ConnectBalance,
    DashboardLink,
    PaymentIntentRequest,
    PayoutSummary,
    ProcessorIntent,
    TransferSummary,
)

# Express dashboard login links are single use and short lived.
LOGIN_LINK_TTL = timedelta(minutes=5)


class IPaymentProcessor(ABC):
    """Outbound payment processor interface."""

    @abstractmethod
    async def create_payment_intent(self, request: PaymentIntentRequest) -> ProcessorIntent:
        """Create an intent. Raises ProcessorError on any processor failure."""
        pass

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
        """Return the parsed event if the signature is valid, else raise BadSignatureError.

        A missing signature is a verification failure, not a caller error.
        """
        pass

    # Connected seller account reads. All raise ProcessorError on failure.

    @abstractmethod
    async def get_account(self, account_id: str) -> ConnectAccountStatus:
        pass

    @abstractmethod
    async def get_balance(self, account_id: str) -> ConnectBalance:
        pass

    @abstractmethod
    async def list_transfers(self, destination: str, limit: int = 10) -> List[TransferSummary]:
        pass

    @abstractmethod
    async def list_payouts(self, account_id: str, limit: int = 10) -> List[PayoutSummary]:
        pass

    @abstractmethod
    async def create_dashboard_link(self, account_id: str) -> DashboardLink:
        pass


def classify_stripe_error(error: stripe.StripeError) -> ProcessorError:
    """Map a Stripe exception onto the service's processor error kinds."""
    code = getattr(error, "code", None)

    if isinstance(error, stripe.CardError):
        return ProcessorError(
            ProcessorErrorKind.CARD,
            user_message=getattr(error, "user_message", None),
            processor_code=code,
        )
    if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
        return ProcessorError(ProcessorErrorKind.CONFIGURATION, processor_code=code)
    if isinstance(error, (stripe.InvalidRequestError, stripe.IdempotencyError)):
        return ProcessorError(ProcessorErrorKind.INVALID_REQUEST, processor_code=code)
    return ProcessorError(ProcessorErrorKind.INFRASTRUCTURE, processor_code=code)


def build_intent_params(request: PaymentIntentRequest) -> Dict[str, Any]:
    """Translate a PaymentIntentRequest into Stripe PaymentIntent parameters."""
    params: Dict[str, Any] = {
        "amount": request.amount_minor_units,
        "currency": request.currency,
        "automatic_payment_methods": {"enabled": True},
        "metadata": dict(request.metadata),
    }

    if request.charge_mode == ChargeMode.DESTINATION:
        # Seller receives the reduced amount; the platform keeps the rest.
        params["transfer_data"] = {
            "amount": request.transfer_amount_minor_units,
            "destination": request.destination_account_id,
        }
    elif request.charge_mode == ChargeMode.APPLICATION_FEE:
        params["application_fee_amount"] = request.platform_fee_minor_units
        params["transfer_data"] = {"destination": request.destination_account_id}

    return params


class StripeProcessor(IPaymentProcessor):
    """
    Stripe-backed processor.

    Intent creation uses the async client methods (httpx transport), so the
    event loop is never blocked on the network.
    """

    def __init__(self, api_key: str, tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE):
        self._api_key = api_key
        self._tolerance = tolerance
        self._logger = structlog.get_logger().bind(component="stripe_processor")

    async def create_payment_intent(self, request: PaymentIntentRequest) -> ProcessorIntent:
        params = build_intent_params(request)
        try:
            intent = await stripe.PaymentIntent.create_async(
                api_key=self._api_key,
                idempotency_key=request.idempotency_key,
                **params,
            )
        except stripe.StripeError as e:
            error = classify_stripe_error(e)
            self._logger.error(
                "stripe_intent_failed",
                error_type=type(e).__name__,
                classification=error.kind.value,
                stripe_code=error.processor_code,
                http_status=getattr(e, "http_status", None),
                request_id=getattr(e, "request_id", None),
            )
            raise error from e

        return ProcessorIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            status=intent.status,
        )

    def verify_webhook(self, payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
        if not signature:
            raise BadSignatureError("missing_signature")
        if not secret:
            raise BadSignatureError("missing_secret")

        # Signature is computed over the raw bytes; verify before parsing.
        try:
            stripe.Webhook.construct_event(payload, signature, secret, tolerance=self._tolerance)
        except stripe.SignatureVerificationError as e:
            raise BadSignatureError("signature_mismatch") from e
        except ValueError as e:
            raise BadSignatureError("malformed_payload") from e

        event = json.loads(payload)
        if not isinstance(event, dict):
            raise BadSignatureError("malformed_payload")
        return event

    # ------------------------------------------------------------------------
    # Connected seller account reads
    # ------------------------------------------------------------------------

    async def _connect_call(
        self,
        operation: str,
        account_id: str,
        call: Callable[[], Awaitable[Any]],
    ) -> Dict[str, Any]:
        try:
            result = await call()
        except stripe.StripeError as e:
            error = classify_stripe_error(e)
            self._logger.error(
                "stripe_connect_call_failed",
                operation=operation,
                account_id=account_id,
                error_type=type(e).__name__,
                classification=error.kind.value,
                stripe_code=error.processor_code,
            )
            raise error from e
        return result.to_dict()

    async def get_account(self, account_id: str) -> ConnectAccountStatus:
        data = await self._connect_call(
            "account_status",
            account_id,
            lambda: stripe.Account.retrieve_async(account_id, api_key=self._api_key),
        )
        return ConnectAccountStatus(
            id=data["id"],
            charges_enabled=bool(data.get("charges_enabled")),
            payouts_enabled=bool(data.get("payouts_enabled")),
            requirements=data.get("requirements") or {},
            capabilities=data.get("capabilities") or {},
        )

    async def get_balance(self, account_id: str) -> ConnectBalance:
        # stripe_account scopes the request to the connected account.
        data = await self._connect_call(
            "balance",
            account_id,
            lambda: stripe.Balance.retrieve_async(api_key=self._api_key, stripe_account=account_id),
        )
        return ConnectBalance(
            available=data.get("available") or [],
            pending=data.get("pending") or [],
        )

    async def list_transfers(self, destination: str, limit: int = 10) -> List[TransferSummary]:
        data = await self._connect_call(
            "transfers",
            destination,
            lambda: stripe.Transfer.list_async(
                api_key=self._api_key, destination=destination, limit=limit
            ),
        )
        return [TransferSummary.model_validate(item) for item in data.get("data", [])]

    async def list_payouts(self, account_id: str, limit: int = 10) -> List[PayoutSummary]:
        data = await self._connect_call(
            "payouts",
            account_id,
            lambda: stripe.Payout.list_async(
                api_key=self._api_key, stripe_account=account_id, limit=limit
            ),
        )
        return [PayoutSummary.model_validate(item) for item in data.get("data", [])]

    async def create_dashboard_link(self, account_id: str) -> DashboardLink:
        data = await self._connect_call(
            "dashboard_link",
            account_id,
            lambda: stripe.Account.create_login_link_async(account_id, api_key=self._api_key),
        )
        created = datetime.fromtimestamp(data["created"], tz=timezone.utc)
        return DashboardLink(url=data["url"], expires_at=created + LOGIN_LINK_TTL)
