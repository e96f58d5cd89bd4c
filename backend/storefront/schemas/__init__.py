# schemas/__init__.py
from storefront.schemas.models import (
    CamelModel,
    BalanceAmount,
    CartLine,
    ChargeMode,
    Collection,
    ConnectAccountStatus,
    ConnectBalance,
    DashboardLink,
    IntentResult,
    OrderRecord,
    OrderStatus,
    PaymentIntentRequest,
    PayoutSummary,
    ProcessorIntent,
    Product,
    RejectedLine,
    RejectionReason,
    TransferSummary,
    ValidationResult,
    ValidLine,
)

__all__ = [
    "BalanceAmount",
    "CamelModel",
    "CartLine",
    "ChargeMode",
    "Collection",
    "ConnectAccountStatus",
    "ConnectBalance",
    "DashboardLink",
    "IntentResult",
    "OrderRecord",
    "OrderStatus",
    "PaymentIntentRequest",
    "PayoutSummary",
    "ProcessorIntent",
    "Product",
    "RejectedLine",
    "RejectionReason",
    "TransferSummary",
    "ValidationResult",
    "ValidLine",
]
