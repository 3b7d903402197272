from datetime import datetime, timedelta

import pytest

from app.config import Settings
from app.core.time_range import TimeRange
from app.services.pricing import PricingEngine

START = datetime(2026, 3, 3, 15, 0)


@pytest.fixture
def pricing():
    return PricingEngine(Settings())


def test_base_amount_uses_ceil_hours_and_type_multiplier(pricing):
    window = TimeRange(datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 2, 11, 30))
    assert pricing.base_amount(window, 100.0, "regular") == 200.0
    assert pricing.base_amount(window, 100.0, "ev-charging") == 240.0
    assert pricing.base_amount(window, 100.0, "reserved") == 300.0


def test_unknown_space_type_is_priced_at_base_rate(pricing):
    window = TimeRange(datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 2, 12, 0))
    assert pricing.base_amount(window, 80.0, "valet") == 160.0


def test_extension_ignores_type_multiplier_by_default(pricing):
    amount = pricing.extension_amount(
        datetime(2026, 3, 2, 12, 0), datetime(2026, 3, 2, 12, 30), 100.0, "ev-charging"
    )
    assert amount == 100.0


def test_extension_can_apply_type_multiplier():
    pricing = PricingEngine(Settings(extension_applies_type_multiplier=True))
    amount = pricing.extension_amount(
        datetime(2026, 3, 2, 12, 0), datetime(2026, 3, 2, 13, 0), 100.0, "ev-charging"
    )
    assert amount == 120.0


def test_overstay_penalty(pricing):
    end = datetime(2026, 3, 2, 16, 0)
    assert pricing.overstay_hours(end, datetime(2026, 3, 2, 17, 45)) == 2
    assert pricing.overstay_penalty(end, datetime(2026, 3, 2, 17, 45), 100.0) == 300.0


def test_no_penalty_when_leaving_on_time(pricing):
    end = datetime(2026, 3, 2, 16, 0)
    assert pricing.overstay_penalty(end, end, 100.0) == 0.0
    assert pricing.overstay_penalty(end, datetime(2026, 3, 2, 15, 0), 100.0) == 0.0
    assert pricing.overstay_penalty(end, None, 100.0) == 0.0


@pytest.mark.parametrize(
    "hours_before, percentage, amount",
    [
        (30, 100.0, 1000.0),
        (5, 50.0, 500.0),
        (1, 0.0, 0.0),
    ],
)
def test_refund_tiers(pricing, hours_before, percentage, amount):
    quote = pricing.cancellation_refund(
        START, START - timedelta(hours=hours_before), 1000.0, "completed"
    )
    assert quote.percentage == percentage
    assert quote.amount == amount
    assert quote.status == ("pending" if amount else "not_applicable")


def test_tier_boundaries_are_exclusive(pricing):
    assert pricing.refund_percentage(24) == 50.0
    assert pricing.refund_percentage(24.01) == 100.0
    assert pricing.refund_percentage(2) == 0.0


def test_unpaid_booking_is_not_refunded(pricing):
    quote = pricing.cancellation_refund(START, START - timedelta(hours=30), 1000.0, "pending")
    assert quote.amount == 0.0
    assert quote.status == "not_applicable"
