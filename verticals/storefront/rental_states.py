"""Rental lifecycle state machine.

Persisted states are explicit enum values with a transition table. Overdue
has two sources:

- derived: an ``active`` rental whose end date has passed. Computed on every
  read by ``effective_status`` and never written back.
- persisted: an administrator explicitly marked the rental overdue. This is an
  override and reads as overdue regardless of dates.

Term arithmetic is calendar based: months are added by keeping the day of
month and clamping to the last day of the target month, so 2024-01-31 plus one
month is 2024-02-29.
"""

import calendar
from datetime import datetime, timedelta
from typing import Any

from core.models.base import as_utc
from patterns.domain_config import RentalConfig
from verticals.storefront.errors import InvalidStateTransition
from verticals.storefront.models.schemas import RentalStatus, RentalTerm


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------

# Allowed persisted transitions: {current_state: [allowed_next_states]}
_RENTAL_TRANSITIONS: dict[RentalStatus, list[RentalStatus]] = {
    RentalStatus.ACTIVE: [RentalStatus.RETURNED, RentalStatus.OVERDUE],
    RentalStatus.OVERDUE: [RentalStatus.RETURNED, RentalStatus.ACTIVE],
    RentalStatus.RETURNED: [],  # terminal
}

# States from which a copy is still out on loan
OPEN_STATES = (RentalStatus.ACTIVE, RentalStatus.OVERDUE)


def can_transition(current: RentalStatus | str, target: RentalStatus | str) -> bool:
    """Check if a persisted transition is allowed."""
    current, target = RentalStatus(current), RentalStatus(target)
    return target in _RENTAL_TRANSITIONS.get(current, [])


def ensure_transition(current: RentalStatus | str, target: RentalStatus | str) -> None:
    """Raise InvalidStateTransition unless ``current -> target`` is allowed."""
    current, target = RentalStatus(current), RentalStatus(target)
    if not can_transition(current, target):
        allowed = [s.value for s in _RENTAL_TRANSITIONS.get(current, [])]
        raise InvalidStateTransition(current.value, target.value, allowed)


def is_terminal(status: RentalStatus | str) -> bool:
    return len(_RENTAL_TRANSITIONS.get(RentalStatus(status), [])) == 0


# ---------------------------------------------------------------------------
# Derived status
# ---------------------------------------------------------------------------

def effective_status(
    status: RentalStatus | str,
    end_date: datetime,
    now: datetime,
) -> RentalStatus:
    """Status as it should be displayed at ``now``.

    Pure function: never persists anything.
    """
    status = RentalStatus(status)
    if status == RentalStatus.ACTIVE and as_utc(now) > as_utc(end_date):
        return RentalStatus.OVERDUE
    return status


# ---------------------------------------------------------------------------
# Terms: dates and prices
# ---------------------------------------------------------------------------

_TERM_PRICE_FIELDS: dict[RentalTerm, str] = {
    RentalTerm.TWO_WEEKS: "rental_price_2weeks",
    RentalTerm.ONE_MONTH: "rental_price_1month",
    RentalTerm.THREE_MONTHS: "rental_price_3months",
}


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month addition, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def end_date_for(
    term: RentalTerm | str,
    start: datetime,
    config: RentalConfig | None = None,
) -> datetime:
    """End of a rental of ``term`` starting at ``start``."""
    config = config or RentalConfig()
    term = RentalTerm(term)
    if term == RentalTerm.TWO_WEEKS:
        return start + timedelta(days=config.two_weeks_days)
    if term == RentalTerm.ONE_MONTH:
        return add_months(start, config.one_month_months)
    return add_months(start, config.three_months_months)


def price_field(term: RentalTerm | str) -> str:
    return _TERM_PRICE_FIELDS[RentalTerm(term)]


def price_for_term(book: Any, term: RentalTerm | str) -> float:
    """Tier price for ``term`` read from a book row, dict or reservation."""
    name = price_field(term)
    value = book[name] if isinstance(book, dict) else getattr(book, name)
    return float(value)
