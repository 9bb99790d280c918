"""
Command-line entry point for the booking engine.

Prices a slot, previews a recurring plan, or runs a scripted end-to-end
demo against the in-memory adapters (no external services required).

Usage:
    python main.py quote --service plumbing --worker W-1001 --date 2025-01-15 --time 09:00 --location gurgaon
    python main.py expand --frequency weekly --days mon,thu --anchor 2025-01-13 --page-size 8
    python main.py demo --verbose
"""

import argparse
import logging
import sys
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from booking_engine.errors import BookingError
from booking_engine.scheduling.lifecycle import BookingLifecycleManager
from booking_engine.scheduling.pricing import recurring_discount_percent
from booking_engine.scheduling.recurrence import RecurringBookingService, next_page
from booking_engine.scheduling.reminders import ReminderScheduler
from booking_engine.schemas.booking_schema import (
    Address,
    BookingRequest,
    BookingStatus,
    PriceBreakdown,
)
from booking_engine.schemas.recurrence_schema import (
    DayOfWeek,
    RecurrencePlan,
    parse_recurrence_plan,
)
from booking_engine.tools.booking_store import InMemoryBookingStore
from booking_engine.tools.event_sink import InMemoryEventSink
from booking_engine.tools.identity import StaticIdentityProvider

logger = logging.getLogger(__name__)

DAY_NAMES = {day.name[:3].lower(): day for day in DayOfWeek}


def _parse_days(value: str) -> list[DayOfWeek]:
    days = []
    for token in value.split(","):
        token = token.strip().lower()[:3]
        if token not in DAY_NAMES:
            raise argparse.ArgumentTypeError(f"Unknown weekday: {token!r}")
        days.append(DAY_NAMES[token])
    return days


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value!r}") from None


def _parse_time(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected HH:MM, got {value!r}") from None


def _add_plan_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--frequency", choices=["weekly", "biweekly", "monthly", "custom"])
    parser.add_argument("--days", type=_parse_days, default=[], help="Comma-separated weekdays, e.g. mon,thu.")
    parser.add_argument("--day-of-month", default=None, help="1-31 or 'last' (monthly plans).")
    parser.add_argument("--months", type=int, default=3, help="Plan duration in months.")
    parser.add_argument("--ongoing", action="store_true", help="Plan has no end.")
    parser.add_argument("--end-date", type=_parse_date, default=None)
    parser.add_argument("--interval-weeks", type=int, default=1, help="Week step for custom plans.")


def _plan_from_args(args: argparse.Namespace) -> Optional[RecurrencePlan]:
    if not args.frequency:
        return None
    day_of_month = args.day_of_month
    if day_of_month is not None and day_of_month != "last":
        day_of_month = int(day_of_month)
    return parse_recurrence_plan(
        {
            "frequency": args.frequency,
            "selected_days": args.days,
            "day_of_month": day_of_month,
            "duration_months": None if args.ongoing else args.months,
            "ongoing": args.ongoing,
            "end_date": args.end_date,
            "interval_weeks": args.interval_weeks,
        }
    )


def format_breakdown(price: PriceBreakdown) -> str:
    lines = [
        f"  Base ({price.hourly_rate} x {price.duration_hours}h): {price.base_amount}",
        f"  Surge (x{price.surge_multiplier}):        +{price.surge_amount}",
        f"  Location premium:        +{price.location_adjustment}",
        f"  Experience premium:      +{price.experience_premium}",
        f"  Emergency fee:           +{price.emergency_fee}",
        f"  Recurring discount ({price.recurring_discount_percent}%): -{price.recurring_discount}",
        f"  Subtotal:                {price.subtotal}",
        f"  Platform fee:            +{price.platform_fee}",
        f"  Tax on fee:              +{price.tax}",
        f"  Total:                   {price.total}",
    ]
    return "\n".join(lines)


def _build_engine(clock=None):
    store = InMemoryBookingStore()
    sink = InMemoryEventSink()
    identity = StaticIdentityProvider(admin_ids={"ADMIN-1"})
    manager = BookingLifecycleManager(store, sink, identity, clock=clock)
    return store, sink, identity, manager


def run_quote(args: argparse.Namespace) -> int:
    _, _, _, manager = _build_engine()
    plan = _plan_from_args(args)
    request = BookingRequest(
        customer_id="CLI",
        worker_id=args.worker,
        service_id=args.service,
        service_date=args.date,
        service_time=args.time,
        duration_hours=args.hours,
        address=Address(location_key=args.location) if args.location else None,
        is_emergency=args.emergency,
    )
    price = manager.quote(request, recurrence_plan=plan)
    sys.stdout.write(f"Quote for {args.service} with {args.worker} on {args.date} at {args.time:%H:%M}\n")
    sys.stdout.write(format_breakdown(price) + "\n")
    if plan is not None:
        sys.stdout.write(f"Recurring discount for this plan: {recurring_discount_percent(plan)}%\n")
    return 0


def run_expand(args: argparse.Namespace) -> int:
    plan = _plan_from_args(args)
    if plan is None:
        logger.error("--frequency is required for expand")
        return 2
    page = next_page(plan, args.anchor, args.page_size, after=args.after)
    for occurrence in page.dates:
        sys.stdout.write(f"{occurrence.isoformat()} {occurrence:%a}\n")
    if page.next_cursor:
        sys.stdout.write(f"More dates available: --after {page.next_cursor.isoformat()}\n")
    return 0


def run_demo(args: argparse.Namespace) -> int:
    """Walk one booking through its lifecycle and book a short weekly series."""
    now = datetime.now(timezone.utc)
    store, sink, identity, manager = _build_engine(clock=lambda: now)
    start = now.date() + timedelta(days=1)

    identity.set_requester("C-2001")
    booking = manager.create(
        BookingRequest(
            customer_id="C-2001",
            worker_id="W-1001",
            service_id="plumbing",
            service_date=start,
            service_time=time(9, 0),
            address=Address(line1="12 Park Lane", city="Gurgaon", location_key="gurgaon"),
            idempotency_key="demo-1",
        )
    )
    sys.stdout.write(f"Created {booking.booking_id} ({booking.status.value})\n")
    sys.stdout.write(format_breakdown(booking.price_breakdown) + "\n")

    for actor, target in [
        ("W-1001", BookingStatus.CONFIRMED),
        ("W-1001", BookingStatus.IN_PROGRESS),
        ("W-1001", BookingStatus.COMPLETED),
    ]:
        booking = manager.transition(booking.booking_id, actor, target)
        sys.stdout.write(f"  -> {booking.status.value}\n")

    try:
        manager.transition(booking.booking_id, "C-2001", BookingStatus.CANCELLED)
    except BookingError as exc:
        sys.stdout.write(f"Cancel after completion rejected: {exc.code}\n")

    plan = RecurrencePlan(
        frequency="weekly",
        selected_days={DayOfWeek(start.weekday())},
        duration_months=1,
    )
    series = RecurringBookingService(manager).book_series(
        BookingRequest(
            customer_id="C-2001",
            worker_id="W-1002",
            service_id="home-cleaning",
            service_date=start,
            service_time=time(14, 0),
        ),
        plan,
    )
    sys.stdout.write(f"Series {series.series_id}: {len(series.booked)} booked\n")
    for result in series.results:
        status = result.booking.booking_id if result.booking else result.error_code
        sys.stdout.write(f"  {result.service_date.isoformat()}: {status}\n")

    first = series.booked[0] if series.booked else None
    if first is not None:
        manager.transition(first.booking_id, "W-1002", BookingStatus.CONFIRMED)
        reminders = ReminderScheduler(store, sink, clock=lambda: now).emit_due_reminders()
        sys.stdout.write(f"Reminders due: {len(reminders.sent)}\n")

    sys.stdout.write(f"Events published: {len(sink.events)}\n")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Home-services booking engine.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging output.")
    commands = parser.add_subparsers(dest="command", required=True)

    quote = commands.add_parser("quote", help="Price a slot and print the breakdown.")
    quote.add_argument("--service", required=True)
    quote.add_argument("--worker", required=True)
    quote.add_argument("--date", type=_parse_date, required=True)
    quote.add_argument("--time", type=_parse_time, required=True)
    quote.add_argument("--hours", type=Decimal, default=None)
    quote.add_argument("--location", default=None)
    quote.add_argument("--emergency", action="store_true")
    _add_plan_arguments(quote)

    expand_cmd = commands.add_parser("expand", help="Print the next page of occurrence dates.")
    expand_cmd.add_argument("--anchor", type=_parse_date, default=date.today())
    expand_cmd.add_argument("--page-size", type=int, default=10)
    expand_cmd.add_argument("--after", type=_parse_date, default=None)
    _add_plan_arguments(expand_cmd)

    commands.add_parser("demo", help="Run a scripted booking lifecycle.")

    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    handlers = {"quote": run_quote, "expand": run_expand, "demo": run_demo}
    try:
        return handlers[args.command](args)
    except BookingError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
