# payments/__init__.py
from storefront.payments.fees import (
    FeeSplit,
    calculate_platform_fee,
    split_charge,
    to_minor_units,
)
from storefront.payments.issuer import PaymentIntentIssuer, build_idempotency_key, retry_window
from storefront.payments.locks import LockToken, PaymentLockManager
from storefront.payments.processor import (
    IPaymentProcessor,
    StripeProcessor,
    build_intent_params,
    classify_stripe_error,
)

__all__ = [
    "FeeSplit",
    "IPaymentProcessor",
    "LockToken",
    "PaymentIntentIssuer",
    "PaymentLockManager",
    "StripeProcessor",
    "build_idempotency_key",
    "build_intent_params",
    "calculate_platform_fee",
    "classify_stripe_error",
    "retry_window",
    "split_charge",
    "to_minor_units",
]
