"""
Amortization primitives: EMI formula, remaining-tenure solver and calendar helpers.

The calc_* functions are vectorized over numpy arrays (one element per loan)
and are used for portfolio-wide projections. The calculate_* functions are the
scalar, validated entry points used by the schedule generator.

Rates are annual percentages throughout (9.0 means 9% p.a.).
"""

import datetime

import numpy as np
import pandas as pd

from loansim.errors import InvalidInputError, StalledAmortizationError

MAX_REASONABLE_TERM = 600  # 50 years


def round_currency(amount: float) -> float:
    """Round half-up to a whole currency unit."""
    return float(np.floor(amount + 0.5))


def is_finite_number(value) -> bool:
    """True for a real, finite number; None, NaN and infinities are rejected."""
    try:
        return bool(np.isfinite(value))
    except TypeError:
        return False


def calc_monthly_payment(principal: np.ndarray,
                         annual_rate: np.ndarray,
                         term_months: np.ndarray) -> np.ndarray:
    """
    Vectorized calculation of fixed monthly payment for fully amortizing loans.

    Formula: EMI = P * [r(1+r)^n] / [(1+r)^n - 1], with r = annual_rate / 1200
    """
    principal = np.asarray(principal, dtype=np.float64)
    term_months = np.asarray(term_months, dtype=np.float64)
    monthly_rate = np.asarray(annual_rate, dtype=np.float64) / 1200.0

    # Handle zero interest rate
    zero_rate_mask = monthly_rate == 0

    numerator = monthly_rate * (1 + monthly_rate) ** term_months
    denominator = (1 + monthly_rate) ** term_months - 1

    # Avoid division by zero
    with np.errstate(divide='ignore', invalid='ignore'):
        payment = principal * (numerator / denominator)

        # For zero rates, payment is simple division
        payment = np.where(zero_rate_mask, principal / term_months, payment)

    return payment


def calc_remaining_term(balance: np.ndarray,
                        annual_rate: np.ndarray,
                        monthly_payment: np.ndarray) -> np.ndarray:
    """
    Vectorized whole months needed to pay off ``balance`` at a fixed payment.

    Formula: n = -ln(1 - r*B/EMI) / ln(1+r), rounded up.

    Loans whose payment does not cover the first month's interest get NaN;
    loans with no balance get 0.
    """
    balance = np.asarray(balance, dtype=np.float64)
    monthly_payment = np.asarray(monthly_payment, dtype=np.float64)
    monthly_rate = np.asarray(annual_rate, dtype=np.float64) / 1200.0

    has_balance_mask = balance > 0

    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = (monthly_rate * balance) / monthly_payment
        stalled_mask = (ratio >= 1) | (monthly_payment <= 0)

        remaining_term = -np.log(1 - ratio) / np.log(1 + monthly_rate)

        # Handle zero rate case
        zero_rate_mask = monthly_rate == 0
        remaining_term = np.where(zero_rate_mask, balance / monthly_payment, remaining_term)

    # Absorb float noise before rounding up to the next whole month
    remaining_term = np.ceil(remaining_term - 1e-9)

    remaining_term = np.where(stalled_mask, np.nan, remaining_term)
    remaining_term = np.where(has_balance_mask, remaining_term, 0.0)

    return remaining_term


def calculate_emi(principal: float, annual_rate: float, tenure_months: int) -> float:
    """
    EMI for a loan, rounded to a whole currency unit.

    Raises InvalidInputError for a non-positive principal or tenure, or a
    negative rate.
    """
    if not is_finite_number(principal) or principal <= 0:
        raise InvalidInputError(f"Principal must be positive, got {principal!r}")
    if not is_finite_number(tenure_months) or tenure_months <= 0 \
            or int(tenure_months) != tenure_months:
        raise InvalidInputError(
            f"Tenure must be a positive whole number of months, got {tenure_months!r}"
        )
    if not is_finite_number(annual_rate) or annual_rate < 0:
        raise InvalidInputError(f"Interest rate cannot be negative, got {annual_rate!r}")

    payment = calc_monthly_payment(np.array([principal]),
                                   np.array([annual_rate]),
                                   np.array([tenure_months]))
    return round_currency(payment[0])


def calculate_remaining_tenure(balance: float, annual_rate: float, emi: float) -> int:
    """
    Whole months needed to clear ``balance`` at ``annual_rate`` paying ``emi``.

    Raises StalledAmortizationError when the EMI does not exceed the monthly
    interest on the balance (the loan would never amortize).
    """
    if not is_finite_number(annual_rate) or annual_rate < 0:
        raise InvalidInputError(f"Interest rate cannot be negative, got {annual_rate!r}")
    if not is_finite_number(emi) or emi <= 0:
        raise InvalidInputError(f"EMI must be positive, got {emi!r}")
    if not is_finite_number(balance):
        raise InvalidInputError(f"Balance must be a finite number, got {balance!r}")
    if balance <= 0:
        return 0

    if balance * annual_rate / 1200.0 >= emi:
        raise StalledAmortizationError(
            f"EMI {emi:,.0f} cannot pay off a balance of {balance:,.0f} at {annual_rate}%: "
            f"monthly interest is {balance * annual_rate / 1200.0:,.0f}"
        )

    months = calc_remaining_term(np.array([balance]), np.array([annual_rate]), np.array([emi]))
    return int(months[0])


def to_date(value) -> datetime.date:
    """
    Normalize a date-like value (date, datetime, Timestamp or ISO string).

    Raises InvalidInputError when the value cannot be parsed.
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidInputError(f"Missing date: {value!r}")
    try:
        parsed = pd.Timestamp(value)
    except (ValueError, TypeError) as exc:
        raise InvalidInputError(f"Malformed date: {value!r}") from exc
    if pd.isna(parsed):
        raise InvalidInputError(f"Malformed date: {value!r}")
    return parsed.date()


def add_months(start: datetime.date, months: int) -> datetime.date:
    """Shift ``start`` by whole calendar months, clamping to month end."""
    return (pd.Timestamp(start) + pd.DateOffset(months=months)).date()


def calc_payment_num(start_dates: pd.Series,
                     end_dates: pd.Series) -> np.ndarray:
    """
    Vectorized calculation of months between two date series.
    """
    start_dates = pd.to_datetime(start_dates)
    end_dates = pd.to_datetime(end_dates)

    # Calculate month difference
    months = (end_dates.dt.year - start_dates.dt.year) * 12 + \
             (end_dates.dt.month - start_dates.dt.month)

    # A payment falls due on the start day-of-month; not reached yet this month
    not_due = end_dates.dt.day < start_dates.dt.day
    months = months - not_due.astype(int)

    # Convert to numpy and handle NaN/negative
    months = months.fillna(0).values
    months = np.maximum(months, 0)

    return months.astype(int)
