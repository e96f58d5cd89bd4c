from decimal import Decimal

import pytest

from storefront.errors import InvalidAmountError
from storefront.payments.fees import calculate_platform_fee, split_charge, to_minor_units
from storefront.schemas.models import ChargeMode


class TestMinorUnits:
    @pytest.mark.parametrize(
        "total,expected",
        [
            (Decimal("50.00"), 5000),
            (Decimal("19.99"), 1999),
            (Decimal("10.005"), 1001),
            (Decimal("0.01"), 1),
        ],
    )
    def test_to_minor_units(self, total, expected):
        assert to_minor_units(total) == expected


class TestPlatformFee:
    def test_percentage_fee(self):
        assert calculate_platform_fee(10000, Decimal("10")) == 1000

    def test_fee_rounds_half_up(self):
        assert calculate_platform_fee(105, Decimal("10")) == 11
        assert calculate_platform_fee(104, Decimal("10")) == 10

    def test_fixed_fee_is_added(self):
        assert calculate_platform_fee(10000, Decimal("2.9"), fixed_fee=30) == 320


class TestSplitCharge:
    def test_destination_split(self):
        split = split_charge(10000, ChargeMode.DESTINATION, Decimal("10"))
        assert split.platform_fee == 1000
        assert split.seller_payout == 9000
        assert split.platform_fee + split.seller_payout == 10000

    @pytest.mark.parametrize("amount", [1, 7, 99, 101, 333, 1999, 4567, 10001, 999999])
    @pytest.mark.parametrize("pct", ["0", "2.5", "10", "12.75", "33.333", "100"])
    def test_parts_sum_to_amount(self, amount, pct):
        split = split_charge(amount, ChargeMode.DESTINATION, Decimal(pct))
        assert split.seller_payout + split.platform_fee == amount
        assert split.seller_payout >= 0

    def test_application_fee_mode_has_same_split(self):
        split = split_charge(5000, ChargeMode.APPLICATION_FEE, Decimal("10"))
        assert (split.platform_fee, split.seller_payout) == (500, 4500)

    def test_platform_mode_has_no_split(self):
        split = split_charge(5000, ChargeMode.PLATFORM, Decimal("10"))
        assert split.platform_fee is None
        assert split.seller_payout is None

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(InvalidAmountError):
            split_charge(amount, ChargeMode.DESTINATION, Decimal("10"))

    def test_fee_larger_than_amount_rejected(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            split_charge(20, ChargeMode.DESTINATION, Decimal("10"), fixed_fee=30)
        assert exc_info.value.details == {"amount": 20, "platformFee": 32}
