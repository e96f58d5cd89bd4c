# storefront/errors.py
# ============================================================================
# STOREFRONT PAYMENTS — ERROR TAXONOMY
# ============================================================================
# Every expected failure is a StorefrontError carrying its HTTP status, a
# stable machine code and an optional details payload. The API layer turns
# these into {success: false, error, code, details} responses.
# ============================================================================

from enum import Enum
from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """Base class for operational errors surfaced to API callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(StorefrontError):
    """Missing or invalid configuration. Fatal at startup."""

    status_code = 500
    code = "CONFIGURATION_ERROR"


class CatalogLoadError(Exception):
    """The product catalog could not be read or parsed. Fatal at startup."""


class CartRejectedError(StorefrontError):
    """The cart failed validation; the whole checkout is refused."""

    status_code = 400
    code = "INVALID_CART"

    def __init__(self, result):
        restricted = [
            line.name or line.product_id
            for line in result.rejected_lines
            if line.reason.value == "NOT_PURCHASABLE"
        ]
        if restricted:
            message = "Products from restricted collections cannot be purchased"
        else:
            message = "Invalid cart items"

        details: Dict[str, Any] = {
            "rejectedLines": [
                line.model_dump(mode="json", by_alias=True, exclude_none=True)
                for line in result.rejected_lines
            ],
            "errors": list(result.errors),
        }
        if restricted:
            details["restrictedItems"] = restricted

        super().__init__(message, details)
        self.result = result
        self.restricted_items: List[str] = restricted


class InvalidAmountError(StorefrontError):
    status_code = 400
    code = "INVALID_AMOUNT"


class PaymentLockHeldError(StorefrontError):
    """Another payment for the same client is still in flight."""

    status_code = 409
    code = "LOCK_HELD"

    def __init__(self, client_id: str):
        super().__init__(
            "Payment already in progress, please try again shortly",
            {"retryable": True},
        )
        self.client_id = client_id


class ProcessorErrorKind(str, Enum):
    CARD = "card_error"
    INVALID_REQUEST = "invalid_request"
    CONFIGURATION = "configuration"
    INFRASTRUCTURE = "infrastructure"


_PROCESSOR_STATUS = {
    ProcessorErrorKind.CARD: 402,
    ProcessorErrorKind.INVALID_REQUEST: 500,
    ProcessorErrorKind.CONFIGURATION: 500,
    ProcessorErrorKind.INFRASTRUCTURE: 502,
}


class ProcessorError(StorefrontError):
    """
    The payment processor rejected or failed the request.

    Only card errors expose the processor's user-facing message. Every other
    kind returns a generic message; the raw error stays in the server logs.
    """

    code = "PROCESSOR_ERROR"

    def __init__(
        self,
        kind: ProcessorErrorKind,
        user_message: Optional[str] = None,
        processor_code: Optional[str] = None,
    ):
        if kind == ProcessorErrorKind.CARD:
            message = user_message or "Your card could not be charged"
        else:
            message = "Payment processing failed, please try again later"
        super().__init__(
            message,
            {"classification": kind.value},
            status_code=_PROCESSOR_STATUS[kind],
        )
        self.kind = kind
        self.processor_code = processor_code


class BadSignatureError(StorefrontError):
    status_code = 400
    code = "BAD_SIGNATURE"

    def __init__(self, reason: str = "Invalid webhook signature"):
        super().__init__("Invalid webhook signature")
        self.reason = reason


class WebhookHandlerError(StorefrontError):
    """A verified event failed in its handler; the processor will redeliver."""

    status_code = 500
    code = "WEBHOOK_PROCESSING_FAILED"


class RateLimitedError(StorefrontError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, retry_after: int):
        super().__init__(
            "Too many payment attempts, please try again later",
            {"retryAfter": retry_after},
        )
        self.retry_after = retry_after


class SessionRequiredError(StorefrontError):
    status_code = 401
    code = "SESSION_REQUIRED"

    def __init__(self):
        super().__init__("A checkout session is required")


class UnknownSellerError(StorefrontError):
    status_code = 400
    code = "INVALID_SELLER"

    def __init__(self, seller_account_id: str):
        super().__init__("Unknown seller account", {"sellerAccountId": seller_account_id})


class AdminAccessDeniedError(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self):
        super().__init__("Seller account access denied")
