"""
Month-by-month amortization schedule with prepayments and rate changes.

The walk is a fold over an immutable _WalkState: each step returns the next
state plus the ScheduleEntry for that month. Per-month order is fixed:

    1. rate change (re-amortize the EMI over the remaining term)
    2. interest accrual
    3. principal component (clipped on the final month)
    4. balance update
    5. prepayments (floored at a zero balance, EMI unchanged)
"""

import datetime
import logging
from dataclasses import dataclass, replace
from typing import Iterable, Optional

import pandas as pd

from loansim.amortization import calculate_emi, calculate_remaining_tenure, round_currency
from loansim.errors import IterationLimitExceededError
from loansim.events import expand_prepayments, month_date, resolve_rate_changes
from loansim.models import LoanTerms, PrepaymentEvent, RateChangeEvent, ScheduleEntry

logger = logging.getLogger(__name__)

ITERATION_LIMIT_MULTIPLIER = 3


@dataclass(frozen=True)
class _WalkState:
    month: int
    balance: float
    rate: float
    emi: float
    horizon: int  # month on which the current EMI is due to clear the balance
    residual_limit: float  # largest leftover the horizon month may absorb; 0 for a stored EMI


def _residual_limit(annual_rate: float, months: int) -> float:
    """Upper bound on the balance left over by rounding a formula EMI over ``months``."""
    return months * (1 + annual_rate / 1200.0) ** months


def _apply_rate_change(state: _WalkState, event: RateChangeEvent, loan: LoanTerms) -> _WalkState:
    remaining = calculate_remaining_tenure(state.balance, state.rate, state.emi)
    new_emi = calculate_emi(state.balance, event.new_rate, remaining)

    logger.debug(
        "Loan %s month %d: rate %.2f%% -> %.2f%%, EMI %.0f -> %.0f over %d months",
        loan.id, state.month, state.rate, event.new_rate, state.emi, new_emi, remaining
    )

    return replace(state,
                   rate=event.new_rate,
                   emi=new_emi,
                   horizon=state.month + remaining - 1,
                   residual_limit=_residual_limit(event.new_rate, remaining))


def _step(state: _WalkState,
          loan: LoanTerms,
          prepayment_map: dict,
          rate_change_map: dict) -> tuple:
    # 1. Rate changes effective this month
    event = rate_change_map.get(state.month)
    if event is not None:
        state = _apply_rate_change(state, event, loan)

    balance = state.balance

    # 2. Interest on the opening balance
    interest = round_currency(balance * state.rate / 1200.0)

    # 3. Principal component; the final month clears whatever is left.
    #    At the horizon a formula EMI also absorbs its own rounding residual
    principal = state.emi - interest
    at_horizon = state.month >= state.horizon
    leftover = balance - principal
    if principal > balance or (at_horizon and leftover <= min(state.residual_limit, state.emi)):
        principal = balance
    emi_this_month = principal + interest

    # 4. Balance update
    balance = balance - principal

    # 5. Prepayments shorten the tenure; EMI is unchanged
    applied = min(prepayment_map.get(state.month, 0.0), max(balance, 0.0))
    balance = balance - applied

    entry = ScheduleEntry(
        month=state.month,
        date=month_date(loan.start_date, state.month),
        emi=emi_this_month,
        principal=principal,
        interest=interest,
        balance=max(balance, 0.0),
        rate=state.rate,
        prepayment=applied if applied > 0 else None,
    )

    return replace(state, month=state.month + 1, balance=balance), entry


def walk_schedule(loan: LoanTerms,
                  prepayments: Optional[Iterable[PrepaymentEvent]] = None,
                  rate_changes: Optional[Iterable[RateChangeEvent]] = None,
                  iteration_limit_multiplier: int = ITERATION_LIMIT_MULTIPLIER) -> tuple:
    """
    Run the schedule walk.

    Returns (entries, final state); the final state carries the EMI in force
    when the loan was paid off.
    """
    max_months = iteration_limit_multiplier * loan.tenure_months

    prepayment_map = expand_prepayments(loan, prepayments, max_months)
    rate_change_map = resolve_rate_changes(loan, rate_changes)

    # A stored EMI that differs from the formula pays off on its own terms
    formula_emi = calculate_emi(loan.principal, loan.interest_rate, loan.tenure_months)
    if loan.emi_amount == formula_emi:
        residual_limit = _residual_limit(loan.interest_rate, loan.tenure_months)
    else:
        residual_limit = 0.0

    state = _WalkState(
        month=1,
        balance=float(loan.principal),
        rate=float(loan.interest_rate),
        emi=float(loan.emi_amount),
        horizon=loan.tenure_months,
        residual_limit=residual_limit,
    )

    entries = []
    while True:
        if state.month > max_months:
            raise IterationLimitExceededError(
                f"Loan {loan.label!r} is not paid off after {max_months} months "
                f"(balance {state.balance:,.0f}, EMI {state.emi:,.0f}, rate {state.rate}%)"
            )

        state, entry = _step(state, loan, prepayment_map, rate_change_map)
        entries.append(entry)

        if state.balance <= 0:
            break

    return entries, state


def generate_schedule(loan: LoanTerms,
                      prepayments: Optional[Iterable[PrepaymentEvent]] = None,
                      rate_changes: Optional[Iterable[RateChangeEvent]] = None,
                      iteration_limit_multiplier: int = ITERATION_LIMIT_MULTIPLIER) -> list:
    """
    Generate the repayment schedule for a loan, from month 1 until payoff.

    Called without events this is the baseline schedule; with hypothetical
    prepayments and/or rate changes it is the modified schedule.

    Parameters
    ----------
    loan : LoanTerms
        Loan terms; the walk starts from the full principal at start_date.
    prepayments : iterable of PrepaymentEvent, optional
        Extra payments; they reduce the balance, not the EMI.
    rate_changes : iterable of RateChangeEvent, optional
        New rates; each re-amortizes the EMI over the remaining term.
    iteration_limit_multiplier : int
        Safety bound on the walk, as a multiple of the loan tenure.

    Returns
    -------
    list of ScheduleEntry, one per month, the last one with balance 0.

    Raises
    ------
    StalledAmortizationError
        A rate change arrives while the EMI does not cover the interest.
    IterationLimitExceededError
        The loan is not paid off within the safety bound.
    """
    entries, _ = walk_schedule(loan, prepayments, rate_changes, iteration_limit_multiplier)
    return entries


def total_interest(schedule: list) -> float:
    return sum(entry.interest for entry in schedule)


def schedule_to_frame(schedule: list) -> pd.DataFrame:
    """Schedule as a DataFrame, one row per month (prepayment 0 where absent)."""
    columns = ['month', 'date', 'rate', 'emi', 'principal', 'interest', 'prepayment', 'balance']
    rows = [
        {
            'month': entry.month,
            'date': entry.date,
            'rate': entry.rate,
            'emi': entry.emi,
            'principal': entry.principal,
            'interest': entry.interest,
            'prepayment': entry.prepayment or 0.0,
            'balance': entry.balance,
        }
        for entry in schedule
    ]
    return pd.DataFrame(rows, columns=columns)


def paid_until(schedule: list, as_of: datetime.date) -> list:
    """Entries dated on or before ``as_of``."""
    return [entry for entry in schedule if entry.date <= as_of]
