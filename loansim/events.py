"""
Event applier: maps prepayments and rate changes onto simulated months.

Month k of a schedule (1-based) is dated start_date + (k - 1) months.

Functions:
    month_date: calendar date of simulated month k
    nearest_month: simulated month closest to a date (prepayments)
    first_month_on_or_after: first simulated month dated on/after a date (rate changes)
    expand_prepayments: month -> total prepayment amount, recurring events expanded
    resolve_rate_changes: month -> rate change taking effect that month
"""

import datetime
import logging
from collections import defaultdict
from typing import Iterable, Optional

from loansim.amortization import add_months
from loansim.models import LoanTerms, PrepaymentEvent, RateChangeEvent

logger = logging.getLogger(__name__)


def month_date(start_date: datetime.date, month: int) -> datetime.date:
    return add_months(start_date, month - 1)


def _months_between(start: datetime.date, end: datetime.date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def nearest_month(start_date: datetime.date, when: datetime.date) -> int:
    """
    Simulated month whose date is closest to ``when``.

    Ties go to the earlier month; dates before the start map to month 1.
    """
    if when <= start_date:
        return 1

    month = _months_between(start_date, when) + 1
    candidate = month_date(start_date, month)
    if candidate > when:
        before, after = month - 1, month
    else:
        before, after = month, month + 1

    gap_before = (when - month_date(start_date, before)).days
    gap_after = (month_date(start_date, after) - when).days
    return before if gap_before <= gap_after else after


def first_month_on_or_after(start_date: datetime.date, when: datetime.date) -> int:
    """First simulated month dated on or after ``when`` (month 1 if already passed)."""
    if when <= start_date:
        return 1

    month = _months_between(start_date, when) + 1
    if month_date(start_date, month) < when:
        month += 1
    return month


def expand_prepayments(loan: LoanTerms,
                       prepayments: Optional[Iterable[PrepaymentEvent]],
                       max_months: int) -> dict:
    """
    Expand prepayment events into concrete per-month amounts.

    Parameters
    ----------
    loan : LoanTerms
        Loan the events apply to (start date anchors the month grid).
    prepayments : iterable of PrepaymentEvent
        One-time and recurring events, in any order.
    max_months : int
        Last month to expand recurring events into.

    Returns
    -------
    dict mapping month index -> total prepayment amount for that month.
    Several events landing on one month are summed.
    """
    amounts = defaultdict(float)

    for event in prepayments or ():
        event.check_owner(loan)
        first = nearest_month(loan.start_date, event.effective_date)
        interval = event.interval_months

        if interval is None:
            if first <= max_months:
                amounts[first] += event.amount
            continue

        for month in range(first, max_months + 1, interval):
            amounts[month] += event.amount

    logger.debug("Expanded %d prepayment months for loan %s", len(amounts), loan.id)
    return dict(amounts)


def resolve_rate_changes(loan: LoanTerms,
                         rate_changes: Optional[Iterable[RateChangeEvent]]) -> dict:
    """
    Resolve which rate change takes effect in each month.

    Changes are applied in effective-date order; when several become effective
    in the same simulated month only the latest one is kept.

    Returns
    -------
    dict mapping month index -> RateChangeEvent.
    """
    resolved = {}

    for event in sorted(rate_changes or (), key=lambda rc: rc.effective_date):
        event.check_owner(loan)
        month = first_month_on_or_after(loan.start_date, event.effective_date)
        resolved[month] = event

    return resolved
