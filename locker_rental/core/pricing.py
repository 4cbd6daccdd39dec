"""Pricing and billing policy.

Rental prices follow a flat step table over the rented duration, not a linear
per-hour rate. Extensions are billed per hour and time held past the paid end
is billed per started overstay block. Everything here is pure: callers pass
the clock reading in.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence, Tuple

from locker_rental.config.settings import Settings
from locker_rental.core.utils import round_half_up

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PriceTier:
    max_minutes: int
    price: int


# Ordered by max_minutes; the last tier is the "all day" price.
PRICE_TABLE: Tuple[PriceTier, ...] = (
    PriceTier(max_minutes=60, price=20),
    PriceTier(max_minutes=120, price=30),
    PriceTier(max_minutes=180, price=35),
    PriceTier(max_minutes=240, price=40),
    PriceTier(max_minutes=360, price=45),
    PriceTier(max_minutes=480, price=50),
)


@dataclass(frozen=True)
class ExtensionCharge:
    overstay_blocks: int
    overstay_charge: int
    extension_cost: int
    additional_charge: int
    new_end_time: datetime


@dataclass(frozen=True)
class VatBreakdown:
    gross: Decimal
    net: Decimal
    vat: Decimal


@dataclass(frozen=True)
class Quote:
    minutes: int
    price: int
    vat: VatBreakdown

    @property
    def hours(self) -> float:
        return self.minutes / 60


def price_for_minutes(minutes: float, table: Sequence[PriceTier] = PRICE_TABLE) -> int:
    if minutes <= 0:
        raise ValueError(f"Duration must be positive, got {minutes} minutes")
    for tier in table:
        if minutes <= tier.max_minutes:
            return tier.price
    return table[-1].price


def price_for_hours(hours: float, table: Sequence[PriceTier] = PRICE_TABLE) -> int:
    return price_for_minutes(hours * 60, table)


def snap_minutes(minutes: float, minimum: int = 30, maximum: int = 480, step: int = 30) -> int:
    snapped = round_half_up(minutes / step) * step
    return max(minimum, min(maximum, snapped))


def overstay_blocks(end_time: datetime, now: datetime, block: timedelta = timedelta(minutes=30)) -> int:
    if now <= end_time:
        return 0
    # ceil division on timedeltas, exact to the microsecond
    return -((end_time - now) // block)


def vat_breakdown(gross: int, vat_rate: float) -> VatBreakdown:
    gross_dec = Decimal(gross)
    net = (gross_dec / (Decimal(1) + Decimal(str(vat_rate)))).quantize(CENT, ROUND_HALF_UP)
    return VatBreakdown(gross=gross_dec.quantize(CENT), net=net, vat=(gross_dec - net).quantize(CENT))


class PricingPolicy:
    def __init__(self, settings: Settings, table: Sequence[PriceTier] = PRICE_TABLE):
        self.table = tuple(sorted(table, key=lambda tier: tier.max_minutes))
        self.rate_per_hour = settings.price_per_hour
        self.overstay_rate = settings.overstay_per_block
        self.overstay_block = timedelta(minutes=settings.overstay_block_min)
        self.min_minutes = settings.min_duration_min
        self.max_minutes = settings.max_duration_min
        self.step_minutes = settings.duration_step_min
        self.vat_rate = settings.vat_rate

    def price(self, hours: float) -> int:
        return price_for_hours(hours, self.table)

    def validate_duration(self, hours: float) -> None:
        minutes = hours * 60
        if not self.min_minutes <= minutes <= self.max_minutes:
            raise ValueError(
                f"Rental duration must be between {self.min_minutes} and "
                f"{self.max_minutes} minutes, got {minutes:g}"
            )

    def quote(self, minutes: float) -> Quote:
        snapped = snap_minutes(minutes, self.min_minutes, self.max_minutes, self.step_minutes)
        price = price_for_minutes(snapped, self.table)
        return Quote(minutes=snapped, price=price, vat=vat_breakdown(price, self.vat_rate))

    def hourly_amount(self, hours: float) -> int:
        return math.ceil(hours * self.rate_per_hour)

    def extension(self, end_time: datetime, now: datetime, extra_hours: float) -> ExtensionCharge:
        if extra_hours <= 0:
            raise ValueError(f"Extension must be positive, got {extra_hours} hours")

        blocks = overstay_blocks(end_time, now, self.overstay_block)
        overstay_charge = blocks * self.overstay_rate
        extension_cost = self.hourly_amount(extra_hours)

        # An overstaying renter's extension counts from now, not from the expired end
        extend_from = max(now, end_time)

        return ExtensionCharge(
            overstay_blocks=blocks,
            overstay_charge=overstay_charge,
            extension_cost=extension_cost,
            additional_charge=extension_cost + overstay_charge,
            new_end_time=extend_from + timedelta(hours=extra_hours),
        )
