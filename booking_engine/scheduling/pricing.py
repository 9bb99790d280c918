"""
Dynamic pricing calculator.

Pure and deterministic: the same inputs always produce the same
PriceBreakdown, so a displayed quote can be re-derived on the server at
booking time and reconciled during audits.

Order of operations:
    base      = round(hourly_rate * hours)
    surge     = round(base * (max(1, peak, weekend) - 1))
    emergency = round(base * 30%)              # unsurged base
    pre       = base + surge + location + experience + emergency
    discount  = round(pre * recurring%)        # capped at 25%
    subtotal  = pre - discount
    platform  = round(subtotal * 5%)
    tax       = round(platform * 18%)          # on the fee only
    total     = subtotal + platform + tax
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from booking_engine.config import PricingConfig, settings
from booking_engine.errors import BookingValidationError
from booking_engine.schemas.booking_schema import PriceBreakdown
from booking_engine.schemas.recurrence_schema import Frequency, RecurrencePlan
from booking_engine.utils import round_money

logger = logging.getLogger(__name__)

ONE = Decimal("1")
HUNDRED = Decimal("100")
WEEKEND_DAYS = (5, 6)

# Percent off per booking, by frequency
FREQUENCY_DISCOUNT_PERCENT: dict[Frequency, Decimal] = {
    Frequency.WEEKLY: Decimal("5"),
    Frequency.BIWEEKLY: Decimal("8"),
    Frequency.MONTHLY: Decimal("12"),
    Frequency.CUSTOM: Decimal("5"),
}

# Longer commitments scale the discount; other month counts scale by 1.0
DURATION_DISCOUNT_MULTIPLIER: dict[int, Decimal] = {
    1: Decimal("1.0"),
    3: Decimal("1.2"),
    6: Decimal("1.5"),
    12: Decimal("2.0"),
}
ONGOING_DISCOUNT_MULTIPLIER = Decimal("2.5")


def surge_multiplier(scheduled_at: datetime, config: Optional[PricingConfig] = None) -> Decimal:
    """Peak-hour and weekend surges do not stack; the larger one wins."""
    config = config or settings.pricing
    peak = ONE
    if any(start <= scheduled_at.hour <= end for start, end in config.peak_hour_windows):
        peak = config.peak_multiplier
    weekend = config.weekend_multiplier if scheduled_at.weekday() in WEEKEND_DAYS else ONE
    return max(ONE, peak, weekend)


def recurring_discount_percent(
    plan: Optional[RecurrencePlan], config: Optional[PricingConfig] = None
) -> int:
    """Whole-number discount percent for a recurrence plan, capped by config."""
    config = config or settings.pricing
    if plan is None or not plan.enabled:
        return 0
    base = FREQUENCY_DISCOUNT_PERCENT.get(plan.frequency, Decimal("0"))
    if plan.ongoing:
        multiplier = ONGOING_DISCOUNT_MULTIPLIER
    else:
        multiplier = DURATION_DISCOUNT_MULTIPLIER.get(plan.duration_months or 0, ONE)
    percent = int(round_money(base * multiplier))
    return min(percent, config.max_recurring_discount_percent)


def location_premium(location: Optional[str], config: Optional[PricingConfig] = None) -> Decimal:
    """Unknown or missing locations carry no premium."""
    config = config or settings.pricing
    if not location:
        return Decimal("0")
    return config.location_premiums.get(location.strip().lower(), Decimal("0"))


def experience_premium(tier: str, config: Optional[PricingConfig] = None) -> Decimal:
    config = config or settings.pricing
    try:
        return config.experience_premiums[tier.strip().lower()]
    except KeyError:
        raise BookingValidationError(
            f"Unknown worker experience tier: {tier!r}", fields=["experience_tier"]
        ) from None


def compute_price(
    base_rate: Decimal,
    duration_hours: Decimal,
    scheduled_at: datetime,
    location: Optional[str] = None,
    experience_tier: str = "beginner",
    is_emergency: bool = False,
    recurrence_plan: Optional[RecurrencePlan] = None,
    config: Optional[PricingConfig] = None,
) -> PriceBreakdown:
    """
    Price one booking.

    Args:
        base_rate: Hourly rate of the service.
        duration_hours: Booked hours, must be positive.
        scheduled_at: Local start of the service; drives surge.
        location: Location key for the premium table.
        experience_tier: Worker tier for the premium table.
        is_emergency: Adds the emergency fee.
        recurrence_plan: Applies the recurring discount when enabled.
        config: Pricing tables and rates (defaults to settings).

    Returns:
        An immutable, itemized PriceBreakdown.

    Raises:
        BookingValidationError: On non-positive rate/duration or unknown tier.
    """
    config = config or settings.pricing
    base_rate = Decimal(base_rate)
    duration_hours = Decimal(duration_hours)
    if base_rate < 0:
        raise BookingValidationError("base_rate must not be negative", fields=["base_rate"])
    if duration_hours <= 0:
        raise BookingValidationError("duration_hours must be positive", fields=["duration_hours"])

    base_amount = round_money(base_rate * duration_hours)
    multiplier = surge_multiplier(scheduled_at, config)
    surge_amount = round_money(base_amount * (multiplier - ONE))
    location_amount = location_premium(location, config)
    experience_amount = experience_premium(experience_tier, config)
    emergency_fee = (
        round_money(base_amount * config.emergency_fee_rate) if is_emergency else Decimal("0")
    )

    pre_discount = base_amount + surge_amount + location_amount + experience_amount + emergency_fee
    discount_percent = recurring_discount_percent(recurrence_plan, config)
    discount = round_money(pre_discount * Decimal(discount_percent) / HUNDRED)

    subtotal = pre_discount - discount
    platform_fee = round_money(subtotal * config.platform_fee_rate)
    tax = round_money(platform_fee * config.tax_rate)
    total = subtotal + platform_fee + tax

    logger.debug(
        "Priced %s x %sh at %s: surge=%s subtotal=%s total=%s",
        base_rate, duration_hours, scheduled_at.isoformat(), multiplier, subtotal, total,
    )
    return PriceBreakdown(
        hourly_rate=base_rate,
        duration_hours=duration_hours,
        base_amount=base_amount,
        surge_multiplier=multiplier,
        surge_amount=surge_amount,
        location_adjustment=location_amount,
        experience_premium=experience_amount,
        emergency_fee=emergency_fee,
        recurring_discount_percent=discount_percent,
        recurring_discount=discount,
        subtotal=subtotal,
        platform_fee=platform_fee,
        tax=tax,
        total=total,
    )
