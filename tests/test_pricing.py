from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from locker_rental.config.settings import Settings
from locker_rental.core.pricing import (
    PRICE_TABLE,
    PricingPolicy,
    overstay_blocks,
    price_for_hours,
    price_for_minutes,
    snap_minutes,
    vat_breakdown,
)

T0 = datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "minutes, price",
    [
        (1, 20),
        (30, 20),
        (60, 20),
        (61, 30),
        (120, 30),
        (121, 35),
        (180, 35),
        (181, 40),
        (240, 40),
        (241, 45),
        (360, 45),
        (361, 50),
        (480, 50),
    ],
)
def test_price_matches_step_table_at_boundaries(minutes, price):
    assert price_for_minutes(minutes) == price


def test_price_is_monotonic_in_minutes():
    prices = [price_for_minutes(m) for m in range(1, 601)]
    assert all(a <= b for a, b in zip(prices, prices[1:]))
    assert set(prices) == {tier.price for tier in PRICE_TABLE}


def test_price_beyond_last_tier_is_all_day_price():
    assert price_for_minutes(600) == 50
    assert price_for_hours(12) == 50


def test_price_for_hours():
    assert price_for_hours(1) == 20
    assert price_for_hours(2) == 30
    assert price_for_hours(1.5) == 30
    assert price_for_hours(4) == 40
    assert price_for_hours(8) == 50


def test_price_rejects_non_positive_duration():
    with pytest.raises(ValueError):
        price_for_minutes(0)


@pytest.mark.parametrize(
    "raw, snapped",
    [(0, 30), (10, 30), (44, 30), (45, 60), (75, 90), (100, 90), (479, 480), (900, 480)],
)
def test_snap_minutes(raw, snapped):
    assert snap_minutes(raw) == snapped


def test_overstay_blocks():
    end = T0
    assert overstay_blocks(end, end - timedelta(minutes=5)) == 0
    assert overstay_blocks(end, end) == 0
    assert overstay_blocks(end, end + timedelta(seconds=1)) == 1
    assert overstay_blocks(end, end + timedelta(minutes=30)) == 1
    assert overstay_blocks(end, end + timedelta(minutes=45)) == 2
    assert overstay_blocks(end, end + timedelta(minutes=60, microseconds=1)) == 3


def test_vat_breakdown_for_inclusive_prices():
    breakdown = vat_breakdown(30, 0.25)
    assert breakdown.gross == Decimal("30.00")
    assert breakdown.net == Decimal("24.00")
    assert breakdown.vat == Decimal("6.00")

    breakdown = vat_breakdown(35, 0.25)
    assert breakdown.net == Decimal("28.00")
    assert breakdown.vat == Decimal("7.00")


def test_policy_extension_with_overstay():
    policy = PricingPolicy(Settings())
    end = T0
    now = end + timedelta(minutes=45)

    charge = policy.extension(end, now, 1)

    assert charge.overstay_blocks == 2
    assert charge.overstay_charge == 2 * policy.overstay_rate
    assert charge.extension_cost == 20
    assert charge.additional_charge == 20 + 30
    assert charge.new_end_time == now + timedelta(hours=1)


def test_policy_extension_before_end_extends_from_end():
    policy = PricingPolicy(Settings())
    end = T0
    now = end - timedelta(minutes=20)

    charge = policy.extension(end, now, 2)

    assert charge.overstay_blocks == 0
    assert charge.overstay_charge == 0
    assert charge.additional_charge == 40
    assert charge.new_end_time == end + timedelta(hours=2)


def test_policy_extension_rejects_non_positive_hours():
    policy = PricingPolicy(Settings())
    with pytest.raises(ValueError):
        policy.extension(T0, T0, 0)


def test_policy_validate_duration():
    policy = PricingPolicy(Settings())
    policy.validate_duration(0.5)
    policy.validate_duration(8)

    with pytest.raises(ValueError):
        policy.validate_duration(0.25)
    with pytest.raises(ValueError):
        policy.validate_duration(9)


def test_policy_quote_snaps_and_prices():
    policy = PricingPolicy(Settings())

    quote = policy.quote(75)

    assert quote.minutes == 90
    assert quote.hours == 1.5
    assert quote.price == 30
    assert quote.vat.net == Decimal("24.00")


def test_policy_honours_configured_rates():
    policy = PricingPolicy(Settings(price_per_hour=25, overstay_per_block=10, overstay_block_min=15))

    charge = policy.extension(T0, T0 + timedelta(minutes=20), 2)

    assert charge.overstay_blocks == 2
    assert charge.overstay_charge == 20
    assert charge.extension_cost == 50
