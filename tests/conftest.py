"""Shared fixtures: a small catalog, test config, a fake processor, Stripe signing."""

import asyncio
import hashlib
import hmac
import json
import time
from decimal import Decimal
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from storefront.catalog.store import CatalogStore
from storefront.catalog.validator import CartValidator
from storefront.config import StorefrontConfig
from storefront.payments.locks import PaymentLockManager
from storefront.payments.processor import StripeProcessor
from storefront.schemas.models import (
    ConnectAccountStatus,
    ConnectBalance,
    DashboardLink,
    PaymentIntentRequest,
    PayoutSummary,
    ProcessorIntent,
    TransferSummary,
)

WEBHOOK_SECRET = "whsec_test_platform"
CONNECT_WEBHOOK_SECRET = "whsec_test_connect"
SELLER_ACCOUNT = "acct_1TestSeller"
ADMIN_TOKEN = "admin-test-token"

CATALOG_RECORDS = [
    {"id": "prod-1", "name": "Silk Slip", "price": "25.00", "category": "lingerie"},
    {"id": "prod-2", "name": "Chain Belt", "price": "19.99", "category": "accessories"},
    {"id": "prod-3", "name": "Bikini Top", "price": "0.335", "category": "swim"},
    {"id": "hat-1", "name": "Bucket Hat", "price": "35.00", "category": "bucket-hats"},
    {"id": "archive-1", "name": "Runway Gown", "price": "1200.00", "category": "timeless"},
    {"id": "misc-1", "name": "Sample Tote", "price": "10.00", "category": "samples"},
]


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProcessor(StripeProcessor):
    """
    Records intent requests instead of calling Stripe. Like Stripe, a repeated
    idempotency key returns the intent created for it the first time.

    Webhook verification is inherited, so signatures are checked with the
    real Stripe scheme.
    """

    def __init__(self):
        super().__init__(api_key="sk_test_fake")
        self.requests: List[PaymentIntentRequest] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()
        self.intents: Dict[str, ProcessorIntent] = {}
        self.connect_calls: List[tuple] = []

    async def create_payment_intent(self, request: PaymentIntentRequest) -> ProcessorIntent:
        self.requests.append(request)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if request.idempotency_key in self.intents:
            return self.intents[request.idempotency_key]
        number = len(self.intents) + 1
        intent = ProcessorIntent(
            id=f"pi_fake_{number}",
            client_secret=f"pi_fake_{number}_secret_abc",
            amount=request.amount_minor_units,
            status="requires_payment_method",
        )
        self.intents[request.idempotency_key] = intent
        return intent

    async def get_account(self, account_id: str) -> ConnectAccountStatus:
        self.connect_calls.append(("account", account_id))
        return ConnectAccountStatus(
            id=account_id,
            charges_enabled=True,
            payouts_enabled=False,
            requirements={"currently_due": ["external_account"]},
            capabilities={"card_payments": "active", "transfers": "active"},
        )

    async def get_balance(self, account_id: str) -> ConnectBalance:
        self.connect_calls.append(("balance", account_id))
        return ConnectBalance(
            available=[{"amount": 4500, "currency": "usd"}],
            pending=[{"amount": 900, "currency": "usd"}],
        )

    async def list_transfers(self, destination: str, limit: int = 10) -> List[TransferSummary]:
        self.connect_calls.append(("transfers", destination, limit))
        return [TransferSummary(
            id="tr_1", amount=4500, currency="usd", created=1710417600, description="Order payout",
        )]

    async def list_payouts(self, account_id: str, limit: int = 10) -> List[PayoutSummary]:
        self.connect_calls.append(("payouts", account_id, limit))
        return [PayoutSummary(
            id="po_1", amount=4500, currency="usd", arrival_date=1710504000, status="paid",
        )]

    async def create_dashboard_link(self, account_id: str) -> DashboardLink:
        self.connect_calls.append(("dashboard", account_id))
        return DashboardLink(
            url="https://connect.stripe.com/express/acct_1TestSeller/abc",
            expires_at=datetime(2024, 3, 14, 12, 5, tzinfo=timezone.utc),
        )


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def make_event(
    event_type: str,
    data_object: Dict[str, Any],
    event_id: str = "evt_test_1",
    account: Optional[str] = None,
) -> bytes:
    event = {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1700000000,
        "livemode": False,
        "data": {"object": data_object},
    }
    if account:
        event["account"] = account
    return json.dumps(event).encode("utf-8")


@pytest.fixture
def catalog():
    return CatalogStore.from_records(CATALOG_RECORDS)


@pytest.fixture
def validator(catalog):
    return CartValidator(catalog)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def locks(clock):
    return PaymentLockManager(ttl_seconds=30.0, clock=clock)


@pytest.fixture
def config():
    return StorefrontConfig(
        stripe_secret_key="sk_test_123",
        stripe_publishable_key="pk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_connect_webhook_secret=CONNECT_WEBHOOK_SECRET,
        seller_account_id=SELLER_ACCOUNT,
        platform_fee_percentage=Decimal("10"),
        payment_rate_limit=None,
        connect_admin_token=ADMIN_TOKEN,
        env="test",
    )


@pytest.fixture
def processor():
    return FakeProcessor()
