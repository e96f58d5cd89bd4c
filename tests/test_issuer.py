import asyncio
import json
import re
from datetime import datetime, timedelta, timezone

import pytest

from storefront.errors import (
    CartRejectedError,
    ConfigurationError,
    InvalidAmountError,
    PaymentLockHeldError,
    ProcessorError,
    ProcessorErrorKind,
    UnknownSellerError,
)
from storefront.payments.issuer import PaymentIntentIssuer, build_idempotency_key, retry_window
from storefront.schemas.models import ChargeMode

from conftest import SELLER_ACCOUNT

CART = [{"id": "prod-1", "quantity": 2}]


class Day:
    def __init__(self, when: datetime):
        self.when = when

    def __call__(self) -> datetime:
        return self.when


@pytest.fixture
def today():
    return Day(datetime(2024, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def issuer(validator, locks, processor, config, today):
    return PaymentIntentIssuer(validator, locks, processor, config, now=today)


class TestPlatformCharge:
    @pytest.mark.asyncio
    async def test_creates_intent_for_validated_total(self, issuer, processor, locks):
        result = await issuer.create_intent("client-A", CART)

        assert result.amount == 5000
        assert result.client_secret == "pi_fake_1_secret_abc"
        assert result.currency == "usd"
        assert result.platform_fee is None
        assert result.seller_payout is None

        request = processor.requests[0]
        assert request.amount_minor_units == 5000
        assert request.charge_mode == ChargeMode.PLATFORM
        assert request.destination_account_id is None
        assert not locks.is_locked("client-A")

    @pytest.mark.asyncio
    async def test_metadata_is_request_derived(self, issuer, processor):
        await issuer.create_intent("client-A", CART)

        metadata = processor.requests[0].metadata
        assert metadata["sessionId"] == "client-A"
        assert metadata["itemCount"] == "2"
        assert metadata["orderTotal"] == "50.00"
        assert json.loads(metadata["items"]) == [
            {"id": "prod-1", "name": "Silk Slip", "quantity": 2, "price": "25.00"}
        ]
        assert "correlationId" not in metadata
        assert all(isinstance(value, str) for value in metadata.values())

    @pytest.mark.asyncio
    async def test_long_item_lists_are_summarised(self, issuer, processor):
        cart = [{"id": "prod-2", "quantity": 1} for _ in range(20)]
        await issuer.create_intent("client-A", cart)
        assert processor.requests[0].metadata["items"] == "20 line items"


class TestConnectCharges:
    @pytest.mark.asyncio
    async def test_destination_charge_transfers_reduced_amount(self, issuer, processor):
        result = await issuer.create_intent("client-A", CART, ChargeMode.DESTINATION)

        assert (result.platform_fee, result.seller_payout) == (500, 4500)
        request = processor.requests[0]
        assert request.destination_account_id == SELLER_ACCOUNT
        assert request.transfer_amount_minor_units == 4500
        assert request.platform_fee_minor_units is None
        assert request.metadata["seller"] == SELLER_ACCOUNT
        assert request.metadata["platformFee"] == "500"

    @pytest.mark.asyncio
    async def test_application_fee_charge(self, issuer, processor):
        result = await issuer.create_intent(
            "client-A",
            CART,
            ChargeMode.APPLICATION_FEE,
            seller_account_id=SELLER_ACCOUNT,
            expected_amount=5000,
        )

        assert result.platform_fee == 500
        request = processor.requests[0]
        assert request.platform_fee_minor_units == 500
        assert request.transfer_amount_minor_units is None

    @pytest.mark.asyncio
    async def test_amount_mismatch_rejected(self, issuer, processor, locks):
        with pytest.raises(InvalidAmountError):
            await issuer.create_intent(
                "client-A", CART, ChargeMode.APPLICATION_FEE, expected_amount=100
            )
        assert processor.requests == []
        assert not locks.is_locked("client-A")

    @pytest.mark.asyncio
    async def test_unknown_seller_rejected(self, issuer, processor):
        with pytest.raises(UnknownSellerError):
            await issuer.create_intent(
                "client-A", CART, ChargeMode.APPLICATION_FEE, seller_account_id="acct_other"
            )
        assert processor.requests == []

    @pytest.mark.asyncio
    async def test_seller_must_be_configured(self, validator, locks, processor, config, today):
        config.seller_account_id = None
        issuer = PaymentIntentIssuer(validator, locks, processor, config, now=today)
        with pytest.raises(ConfigurationError):
            await issuer.create_intent("client-A", CART, ChargeMode.DESTINATION)


class TestRejectedCart:
    @pytest.mark.asyncio
    async def test_rejected_cart_never_reaches_processor(self, issuer, processor, locks):
        with pytest.raises(CartRejectedError) as exc_info:
            await issuer.create_intent(
                "client-A",
                [{"id": "prod-1", "quantity": 1}, {"id": "archive-1", "quantity": 1}],
            )

        error = exc_info.value
        assert error.restricted_items == ["Runway Gown"]
        assert error.details["rejectedLines"][0]["productId"] == "archive-1"
        assert error.details["rejectedLines"][0]["reason"] == "NOT_PURCHASABLE"
        assert processor.requests == []
        assert not locks.is_locked("client-A")


class TestLocking:
    @pytest.mark.asyncio
    async def test_concurrent_calls_for_one_client(self, issuer, processor):
        processor.gate = asyncio.Event()

        first = asyncio.create_task(issuer.create_intent("client-A", CART))
        await asyncio.wait_for(processor.entered.wait(), timeout=1)

        with pytest.raises(PaymentLockHeldError):
            await issuer.create_intent("client-A", CART)

        processor.gate.set()
        result = await first

        assert result.amount == 5000
        assert len(processor.requests) == 1

    @pytest.mark.asyncio
    async def test_other_clients_are_not_blocked(self, issuer, processor):
        processor.gate = asyncio.Event()

        first = asyncio.create_task(issuer.create_intent("client-A", CART))
        await asyncio.wait_for(processor.entered.wait(), timeout=1)
        second = asyncio.create_task(issuer.create_intent("client-B", CART))

        processor.gate.set()
        await asyncio.gather(first, second)
        assert len(processor.requests) == 2

    @pytest.mark.asyncio
    async def test_lock_released_when_processor_fails(self, issuer, processor, locks):
        processor.error = ProcessorError(ProcessorErrorKind.INFRASTRUCTURE)

        with pytest.raises(ProcessorError):
            await issuer.create_intent("client-A", CART)
        assert not locks.is_locked("client-A")

        processor.error = None
        result = await issuer.create_intent("client-A", CART)
        assert result.amount == 5000

    @pytest.mark.asyncio
    async def test_lock_released_on_unexpected_error(self, issuer, processor, locks):
        processor.error = RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            await issuer.create_intent("client-A", CART)
        assert not locks.is_locked("client-A")




class TestIdempotencyKey:
    @pytest.mark.asyncio
    async def test_identical_retry_reuses_key(self, issuer, processor, today):
        first = await issuer.create_intent("client-A", CART)
        second = await issuer.create_intent("client-A", CART)

        assert first.idempotency_key == second.idempotency_key
        assert first.client_secret == second.client_secret
        assert processor.requests[0].metadata == processor.requests[1].metadata
        bucket = retry_window(today.when, 300)
        assert re.fullmatch(rf"pi_[0-9a-f]{{32}}_{bucket}", first.idempotency_key)

    @pytest.mark.asyncio
    async def test_retry_inside_window_reuses_intent(self, issuer, today):
        first = await issuer.create_intent("client-A", CART)
        today.when += timedelta(minutes=2)
        retry = await issuer.create_intent("client-A", CART)

        assert retry.payment_intent_id == first.payment_intent_id

    @pytest.mark.asyncio
    async def test_same_cart_hours_later_is_a_new_purchase(self, issuer, processor, today):
        today.when = datetime(2024, 3, 14, 9, 0, tzinfo=timezone.utc)
        morning = await issuer.create_intent("203.0.113.7", [{"id": "hat-1", "quantity": 1}])
        today.when = datetime(2024, 3, 14, 17, 0, tzinfo=timezone.utc)
        evening = await issuer.create_intent("203.0.113.7", [{"id": "hat-1", "quantity": 1}])

        assert morning.idempotency_key != evening.idempotency_key
        assert morning.client_secret != evening.client_secret
        assert len(processor.intents) == 2

    @pytest.mark.asyncio
    async def test_checkout_id_separates_shoppers_sharing_an_address(self, issuer, processor):
        first = await issuer.create_intent("203.0.113.7", CART, checkout_id="co-first")
        second = await issuer.create_intent("203.0.113.7", CART, checkout_id="co-second")
        retried = await issuer.create_intent("203.0.113.7", CART, checkout_id="co-first")

        assert first.client_secret != second.client_secret
        assert retried.client_secret == first.client_secret
        assert processor.requests[0].metadata["checkoutId"] == "co-first"

    @pytest.mark.asyncio
    async def test_key_changes_with_cart_client_and_mode(self, issuer):
        base = (await issuer.create_intent("client-A", CART)).idempotency_key

        other_cart = await issuer.create_intent("client-A", [{"id": "prod-1", "quantity": 3}])
        other_client = await issuer.create_intent("client-B", CART)
        other_mode = await issuer.create_intent("client-A", CART, ChargeMode.DESTINATION)

        keys = {
            base,
            other_cart.idempotency_key,
            other_client.idempotency_key,
            other_mode.idempotency_key,
        }
        assert len(keys) == 4

    @pytest.mark.asyncio
    async def test_window_follows_configuration(self, issuer, config, today):
        config.payment_retry_window_seconds = 3600
        first = await issuer.create_intent("client-A", CART)
        today.when += timedelta(minutes=30)
        second = await issuer.create_intent("client-A", CART)

        assert first.idempotency_key == second.idempotency_key

    def test_retry_window_buckets(self):
        start = datetime(2024, 3, 14, 12, 0, tzinfo=timezone.utc)

        assert retry_window(start, 300) == retry_window(start + timedelta(seconds=299), 300)
        assert retry_window(start, 300) != retry_window(start + timedelta(seconds=300), 300)

    def test_extra_metadata_is_part_of_the_key(self, validator):
        validation = validator.validate(CART)
        plain = build_idempotency_key(
            "c", ChargeMode.APPLICATION_FEE, SELLER_ACCOUNT, "usd", validation, 5000, 5701392
        )
        with_email = build_idempotency_key(
            "c", ChargeMode.APPLICATION_FEE, SELLER_ACCOUNT, "usd", validation, 5000, 5701392,
            {"customerEmail": "a@example.com"},
        )
        assert plain != with_email
