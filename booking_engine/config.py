"""
Centralized configuration with environment variable overrides.

Surge multipliers, fee rates, premium tables, and scheduling limits are
configurable here. Pricing and scheduling logic never hardcodes them.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

from booking_engine.logging_context import RequestIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_decimal(env_var: str, default: str) -> Decimal:
    """Parse a Decimal from an env var. Money and rates never go through float."""
    raw = os.getenv(env_var, default)
    try:
        return Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        raise ValueError(
            f"Invalid decimal for {env_var}: {raw!r}"
        ) from None


def _safe_table(env_var: str, default: str) -> dict[str, Decimal]:
    """Parse a ``key=amount,key=amount`` lookup table from an env var.

    Keys are lower-cased so lookups are case-insensitive.
    """
    raw = os.getenv(env_var, default)
    table: dict[str, Decimal] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, amount = entry.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid table entry for {env_var}: {entry!r}")
        try:
            table[key.strip().lower()] = Decimal(amount.strip())
        except InvalidOperation:
            raise ValueError(
                f"Invalid amount for {env_var}[{key.strip()}]: {amount!r}"
            ) from None
    return table


DEFAULT_LOCATION_PREMIUMS = (
    "south-delhi=100,gurgaon=150,noida=75,mumbai-central=200,bangalore-koramangala=125"
)
DEFAULT_EXPERIENCE_PREMIUMS = "beginner=0,intermediate=50,expert=150,master=300"


@dataclass(frozen=True)
class PricingConfig:
    """Rates and premium tables consumed by the pricing calculator."""

    peak_multiplier: Decimal = _safe_decimal("PEAK_SURGE_MULTIPLIER", "1.20")
    weekend_multiplier: Decimal = _safe_decimal("WEEKEND_SURGE_MULTIPLIER", "1.15")
    # Inclusive hour-of-day ranges
    peak_hour_windows: tuple[tuple[int, int], ...] = ((8, 10), (18, 20))
    emergency_fee_rate: Decimal = _safe_decimal("EMERGENCY_FEE_RATE", "0.30")
    platform_fee_rate: Decimal = _safe_decimal("PLATFORM_FEE_RATE", "0.05")
    tax_rate: Decimal = _safe_decimal("TAX_RATE", "0.18")
    max_recurring_discount_percent: int = _safe_int("MAX_RECURRING_DISCOUNT_PERCENT", "25")
    location_premiums: dict[str, Decimal] = field(
        default_factory=lambda: _safe_table("LOCATION_PREMIUMS", DEFAULT_LOCATION_PREMIUMS)
    )
    experience_premiums: dict[str, Decimal] = field(
        default_factory=lambda: _safe_table("EXPERIENCE_PREMIUMS", DEFAULT_EXPERIENCE_PREMIUMS)
    )


@dataclass(frozen=True)
class SchedulingConfig:
    """Locking, reminder, and recurrence limits."""

    worker_lock_timeout_sec: float = _safe_float("WORKER_LOCK_TIMEOUT", "5.0")
    store_retry_after_sec: int = _safe_int("STORE_RETRY_AFTER", "2")
    reminder_lead_days: int = _safe_int("REMINDER_LEAD_DAYS", "1")
    recurrence_page_size: int = _safe_int("RECURRENCE_PAGE_SIZE", "10")
    max_booking_hours: Decimal = _safe_decimal("MAX_BOOKING_HOURS", "12")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    pricing: PricingConfig = field(default_factory=PricingConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "booking-engine")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    pricing = config.pricing
    for name, multiplier in [
        ("PEAK_SURGE_MULTIPLIER", pricing.peak_multiplier),
        ("WEEKEND_SURGE_MULTIPLIER", pricing.weekend_multiplier),
    ]:
        if multiplier < 1:
            raise ValueError(f"{name} must be >= 1.0, got {multiplier}")

    for name, rate in [
        ("EMERGENCY_FEE_RATE", pricing.emergency_fee_rate),
        ("PLATFORM_FEE_RATE", pricing.platform_fee_rate),
        ("TAX_RATE", pricing.tax_rate),
    ]:
        if not 0 <= rate <= 1:
            raise ValueError(f"{name} must be between 0.0 and 1.0, got {rate}")

    if not 0 <= pricing.max_recurring_discount_percent <= 100:
        raise ValueError(
            "MAX_RECURRING_DISCOUNT_PERCENT must be between 0 and 100, "
            f"got {pricing.max_recurring_discount_percent}"
        )

    for table_name, table in [
        ("LOCATION_PREMIUMS", pricing.location_premiums),
        ("EXPERIENCE_PREMIUMS", pricing.experience_premiums),
    ]:
        negative = [key for key, amount in table.items() if amount < 0]
        if negative:
            raise ValueError(f"{table_name} must not contain negative amounts: {negative}")

    for start, end in pricing.peak_hour_windows:
        if not 0 <= start <= end <= 23:
            raise ValueError(f"Invalid peak hour window: ({start}, {end})")

    scheduling = config.scheduling
    if scheduling.worker_lock_timeout_sec <= 0:
        raise ValueError(
            f"WORKER_LOCK_TIMEOUT must be > 0, got {scheduling.worker_lock_timeout_sec}"
        )
    if scheduling.store_retry_after_sec < 0:
        raise ValueError(
            f"STORE_RETRY_AFTER must be >= 0, got {scheduling.store_retry_after_sec}"
        )
    if scheduling.reminder_lead_days < 0:
        raise ValueError(
            f"REMINDER_LEAD_DAYS must be >= 0, got {scheduling.reminder_lead_days}"
        )
    if scheduling.recurrence_page_size < 1:
        raise ValueError(
            f"RECURRENCE_PAGE_SIZE must be >= 1, got {scheduling.recurrence_page_size}"
        )
    if not 0 < scheduling.max_booking_hours <= 24:
        raise ValueError(
            f"MAX_BOOKING_HOURS must be in (0, 24], got {scheduling.max_booking_hours}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    # The filter sits on the handler so records from any logger can be formatted
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler],
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
