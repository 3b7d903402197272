"""
Booking fee, extension, overstay penalty and cancellation refund arithmetic.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from app.config import Settings, get_settings
from app.core.time_range import HOUR, TimeRange, ceil_hours
from app.models.booking import PaymentStatus, RefundStatus


@dataclass(frozen=True)
class RefundQuote:
    hours_until_start: float
    percentage: float
    amount: float
    status: str


def _money(value: float) -> float:
    return round(value, 2)


class PricingEngine:
    """Pure pricing rules, parameterized by settings."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def type_multiplier(self, space_type: str) -> float:
        return self.settings.space_type_multipliers.get(space_type, 1.0)

    def base_amount(self, time_range: TimeRange, hourly_rate: float, space_type: str) -> float:
        """ceil(hours) x rate x space-type multiplier."""
        return _money(time_range.duration_hours * hourly_rate * self.type_multiplier(space_type))

    def extension_amount(
        self,
        old_end: datetime,
        new_end: datetime,
        hourly_rate: float,
        space_type: str,
    ) -> float:
        hours = ceil_hours(new_end - old_end)
        amount = hours * hourly_rate
        if self.settings.extension_applies_type_multiplier:
            amount *= self.type_multiplier(space_type)
        return _money(amount)

    def overstay_hours(self, end_time: datetime, exit_time: Optional[datetime]) -> int:
        if exit_time is None or exit_time <= end_time:
            return 0
        return ceil_hours(exit_time - end_time)

    def overstay_penalty(
        self,
        end_time: datetime,
        exit_time: Optional[datetime],
        hourly_rate: float,
    ) -> float:
        hours = self.overstay_hours(end_time, exit_time)
        return _money(hours * hourly_rate * self.settings.penalty_multiplier)

    def refund_percentage(self, hours_until_start: float) -> float:
        if hours_until_start > self.settings.full_refund_hours:
            return 100.0
        if hours_until_start > self.settings.partial_refund_hours:
            return float(self.settings.partial_refund_percentage)
        return 0.0

    def cancellation_refund(
        self,
        start_time: datetime,
        now: datetime,
        total_amount: float,
        payment_status: str,
    ) -> RefundQuote:
        """Refund owed when cancelling at ``now``; only paid bookings are refunded."""
        hours_until_start = (start_time - now) / HOUR
        percentage = self.refund_percentage(hours_until_start)

        if payment_status != PaymentStatus.COMPLETED:
            return RefundQuote(hours_until_start, percentage, 0.0, RefundStatus.NOT_APPLICABLE.value)

        amount = _money(total_amount * percentage / 100)
        status = RefundStatus.PENDING.value if amount > 0 else RefundStatus.NOT_APPLICABLE.value
        return RefundQuote(hours_until_start, percentage, amount, status)
