# schemas/models.py
# ============================================================================
# STOREFRONT PAYMENTS — DOMAIN SCHEMAS
# ============================================================================
# Catalog entities are frozen once loaded. Cart and payment models are
# ephemeral and live for a single request.
# ============================================================================

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serialises to the camelCase keys the storefront frontend expects."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# CATALOG
# =============================================================================

class Collection(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    purchasable: bool


class Product(BaseModel):
    """A catalog entry. Immutable after the catalog is loaded."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    price: Decimal = Field(ge=0)
    category: str
    collection: str
    purchasable: bool
    description: Optional[str] = None
    in_stock: bool = True


# =============================================================================
# CART VALIDATION
# =============================================================================

class RejectionReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    NOT_PURCHASABLE = "NOT_PURCHASABLE"
    MALFORMED = "MALFORMED"


class CartLine(CamelModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class ValidLine(CamelModel):
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class RejectedLine(CamelModel):
    index: int
    product_id: Optional[str] = None
    reason: RejectionReason
    message: str
    name: Optional[str] = None
    collection: Optional[str] = None


class ValidationResult(CamelModel):
    valid_lines: List[ValidLine] = Field(default_factory=list)
    rejected_lines: List[RejectedLine] = Field(default_factory=list)
    total: Decimal = Decimal("0.00")
    errors: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def accepted(self) -> bool:
        return not self.rejected_lines and not self.errors and bool(self.valid_lines)


# =============================================================================
# PAYMENT INTENTS
# =============================================================================

class ChargeMode(str, Enum):
    """How funds move between the platform and the connected seller."""

    PLATFORM = "platform"              # plain charge, no seller split
    DESTINATION = "destination"        # reduced amount transferred to the seller
    APPLICATION_FEE = "application_fee"  # full charge, explicit fee retained


class PaymentIntentRequest(BaseModel):
    """Parameters sent to the payment processor for one intent."""

    amount_minor_units: int = Field(gt=0)
    currency: str = "usd"
    charge_mode: ChargeMode = ChargeMode.PLATFORM
    destination_account_id: Optional[str] = None
    transfer_amount_minor_units: Optional[int] = None
    platform_fee_minor_units: Optional[int] = None
    idempotency_key: str
    metadata: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_charge_mode(self) -> "PaymentIntentRequest":
        mode = self.charge_mode
        if mode == ChargeMode.PLATFORM:
            if (
                self.destination_account_id
                or self.transfer_amount_minor_units is not None
                or self.platform_fee_minor_units is not None
            ):
                raise ValueError("platform charges carry no seller split")
        elif mode == ChargeMode.DESTINATION:
            if not self.destination_account_id or self.transfer_amount_minor_units is None:
                raise ValueError("destination charges need a destination and transfer amount")
            if self.platform_fee_minor_units is not None:
                raise ValueError("destination charges cannot also declare an application fee")
            if not 0 <= self.transfer_amount_minor_units <= self.amount_minor_units:
                raise ValueError("transfer amount must be within the charge amount")
        elif mode == ChargeMode.APPLICATION_FEE:
            if not self.destination_account_id or self.platform_fee_minor_units is None:
                raise ValueError("application fee charges need a destination and fee")
            if self.transfer_amount_minor_units is not None:
                raise ValueError("application fee charges cannot also set a transfer amount")
            if not 0 <= self.platform_fee_minor_units <= self.amount_minor_units:
                raise ValueError("platform fee must be within the charge amount")
        return self


class ProcessorIntent(BaseModel):
    """The subset of a processor-side payment intent the service uses."""

    id: str
    client_secret: str
    amount: int
    status: str


class IntentResult(BaseModel):
    payment_intent_id: str
    client_secret: str
    amount: int
    currency: str
    charge_mode: ChargeMode
    platform_fee: Optional[int] = None
    seller_payout: Optional[int] = None
    idempotency_key: str
    correlation_id: str


# =============================================================================
# ORDERS (webhook side effects)
# =============================================================================

class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"


class OrderRecord(BaseModel):
    payment_intent_id: str
    status: OrderStatus = OrderStatus.PENDING
    amount: Optional[int] = None
    currency: Optional[str] = None
    last_error: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# CONNECTED SELLER ACCOUNT (read-only views)
# =============================================================================

class ConnectAccountStatus(BaseModel):
    id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    requirements: Dict[str, Any] = Field(default_factory=dict)
    capabilities: Dict[str, Any] = Field(default_factory=dict)


class BalanceAmount(BaseModel):
    amount: int
    currency: str


class ConnectBalance(BaseModel):
    available: List[BalanceAmount] = Field(default_factory=list)
    pending: List[BalanceAmount] = Field(default_factory=list)


class TransferSummary(BaseModel):
    id: str
    amount: int
    currency: str
    created: datetime  # epoch seconds from Stripe are parsed as UTC
    description: Optional[str] = None


class PayoutSummary(BaseModel):
    id: str
    amount: int
    currency: str
    arrival_date: datetime
    status: str


class DashboardLink(BaseModel):
    url: str
    expires_at: datetime
