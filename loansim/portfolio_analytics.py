"""
Portfolio analytics across a user's loans.

Functions:
    calculate_loan_analytics — paid/remaining principal and interest for one loan
    calculate_portfolio_analytics — portfolio totals, averages and income ratios
    loan_analytics_frame — one row per loan, with vectorized payoff projection
    calculate_category_metrics — ALL row plus one row per loan category

Paid interest to date is taken from the baseline schedule re-run from the
loan's terms and summed over the entries dated on or before ``as_of``.
"""

import datetime
import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from loansim.amortization import (
    MAX_REASONABLE_TERM,
    add_months,
    calc_payment_num,
    calc_remaining_term,
    calculate_remaining_tenure,
    to_date,
)
from loansim.errors import StalledAmortizationError
from loansim.models import LoanTerms
from loansim.schedule import generate_schedule, paid_until, total_interest

logger = logging.getLogger(__name__)


def _resolve_as_of(as_of) -> datetime.date:
    return datetime.date.today() if as_of is None else to_date(as_of)


def calculate_loan_analytics(loan: LoanTerms, as_of=None) -> dict:
    """
    Analytics for a single loan.

    Parameters
    ----------
    loan : LoanTerms
        Loan terms with its current outstanding balance.
    as_of : date-like, optional
        Cut-off for paid interest (default: today).

    Returns
    -------
    dict with keys: loan_id, loan_type, label, total_principal, paid_principal,
        remaining_principal, paid_interest, total_interest, emi, interest_rate,
        progress, remaining_months, projected_payoff_date
    """
    as_of = _resolve_as_of(as_of)
    paid_principal = loan.principal - loan.outstanding_balance

    # A stored EMI too small for the rate leaves the schedule-derived
    # fields empty instead of failing the whole portfolio
    try:
        schedule = generate_schedule(loan)
        paid_interest = total_interest(paid_until(schedule, as_of))
        loan_interest = total_interest(schedule)

        # Remaining term on the actual outstanding balance at the stored EMI
        remaining_months = calculate_remaining_tenure(
            loan.outstanding_balance, loan.interest_rate, loan.emi_amount
        )
    except StalledAmortizationError:
        logger.warning(
            "calculate_loan_analytics: EMI %.0f cannot amortize loan %s at %.2f%%",
            loan.emi_amount, loan.id, loan.interest_rate
        )
        paid_interest = None
        loan_interest = None
        remaining_months = None

    if remaining_months is None:
        projected_payoff_date = None
    elif remaining_months == 0:
        projected_payoff_date = as_of
    else:
        projected_payoff_date = add_months(as_of, remaining_months)

    return {
        'loan_id': loan.id,
        'loan_type': loan.loan_type,
        'label': loan.label,
        'total_principal': loan.principal,
        'paid_principal': paid_principal,
        'remaining_principal': loan.outstanding_balance,
        'paid_interest': paid_interest,
        'total_interest': loan_interest,
        'emi': loan.emi_amount,
        'interest_rate': loan.interest_rate,
        'progress': paid_principal / loan.principal,
        'remaining_months': remaining_months,
        'projected_payoff_date': projected_payoff_date,
    }


def calculate_portfolio_analytics(loans: Iterable[LoanTerms],
                                  as_of=None,
                                  monthly_income: Optional[float] = None,
                                  fixed_expenses: Optional[Iterable[float]] = None,
                                  verbose: bool = False) -> dict:
    """
    Combine per-loan analytics across a collection of loans.

    Parameters
    ----------
    loans : iterable of LoanTerms
    as_of : date-like, optional
        Cut-off for paid interest (default: today).
    monthly_income : float, optional
        When given, EMI-to-income ratio and remaining income are reported.
    fixed_expenses : iterable of float, optional
        Other fixed monthly outgoings, deducted from income.
    verbose : bool
        Print results (default: False)

    Returns
    -------
    dict with keys:
    - loan_count
    - stalled_loan_count: loans whose EMI cannot amortize (left out of interest totals)
    - total_principal, total_paid_principal, total_remaining_principal
    - total_paid_interest, total_interest
    - total_monthly_emi
    - avg_interest_rate: simple average of loan rates
    - weighted_avg_rate: average rate weighted by outstanding balance
    - total_fixed_expenses
    - emi_to_income_ratio, remaining_income (None without monthly_income)
    """
    loans = list(loans)
    per_loan = [calculate_loan_analytics(loan, as_of) for loan in loans]
    amortizing = [a for a in per_loan if a['total_interest'] is not None]

    metrics = {
        'loan_count': len(loans),
        'stalled_loan_count': len(per_loan) - len(amortizing),
        'total_principal': sum(a['total_principal'] for a in per_loan),
        'total_paid_principal': sum(a['paid_principal'] for a in per_loan),
        'total_remaining_principal': sum(a['remaining_principal'] for a in per_loan),
        'total_paid_interest': sum(a['paid_interest'] for a in amortizing),
        'total_interest': sum(a['total_interest'] for a in amortizing),
        'total_monthly_emi': sum(loan.emi_amount for loan in loans),
    }

    rates = np.array([loan.interest_rate for loan in loans], dtype=np.float64)
    outstanding = np.array([loan.outstanding_balance for loan in loans], dtype=np.float64)

    metrics['avg_interest_rate'] = float(rates.mean()) if len(rates) > 0 else 0.0

    if outstanding.sum() > 0:
        metrics['weighted_avg_rate'] = float(np.average(rates, weights=outstanding))
    else:
        metrics['weighted_avg_rate'] = 0.0

    total_fixed_expenses = float(sum(fixed_expenses or ()))
    metrics['total_fixed_expenses'] = total_fixed_expenses

    if monthly_income is not None and monthly_income > 0:
        metrics['emi_to_income_ratio'] = metrics['total_monthly_emi'] / monthly_income
        metrics['remaining_income'] = (
            monthly_income - metrics['total_monthly_emi'] - total_fixed_expenses
        )
    else:
        metrics['emi_to_income_ratio'] = None
        metrics['remaining_income'] = None

    if verbose:
        print(f"="*80)
        print(f"PORTFOLIO ANALYTICS ({len(loans)} loans)")
        print(f"="*80)
        for key, value in metrics.items():
            print(f"{key:<28} {value}")

    return metrics


def loan_analytics_frame(loans: Iterable[LoanTerms], as_of=None) -> pd.DataFrame:
    """
    One row per loan with analytics and a vectorized payoff projection.

    Adds 'months_elapsed' (whole months since start) and
    'updated_remaining_term' (capped at MAX_REASONABLE_TERM, NaN when the
    EMI cannot amortize the outstanding balance).
    """
    as_of = _resolve_as_of(as_of)
    loans = list(loans)

    columns = [
        'loan_id', 'loan_type', 'label', 'total_principal', 'paid_principal',
        'remaining_principal', 'paid_interest', 'total_interest', 'emi',
        'interest_rate', 'progress', 'months_elapsed', 'updated_remaining_term',
    ]
    if not loans:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame([calculate_loan_analytics(loan, as_of) for loan in loans])
    df[['paid_interest', 'total_interest']] = df[['paid_interest', 'total_interest']].astype(np.float64)

    start_dates = pd.Series([pd.Timestamp(loan.start_date) for loan in loans])
    as_of_dates = pd.Series([pd.Timestamp(as_of)] * len(loans))
    df['months_elapsed'] = calc_payment_num(start_dates, as_of_dates)

    remaining_term = calc_remaining_term(
        df['remaining_principal'].values,
        df['interest_rate'].values,
        df['emi'].values,
    )
    df['updated_remaining_term'] = np.minimum(remaining_term, MAX_REASONABLE_TERM)

    return df[columns]


def calculate_category_metrics(loans: Iterable[LoanTerms],
                               as_of=None,
                               verbose: bool = False) -> pd.DataFrame:
    """
    Loan metrics for the whole portfolio and for each loan category.

    Returns
    -------
    results_df : pd.DataFrame
        First row is the 'ALL' aggregate, then one row per loan_type
        (sorted), with columns: category, loan_count, total_principal,
        total_outstanding, total_emi, weighted_avg_rate, total_interest,
        paid_interest
    """
    df = loan_analytics_frame(loans, as_of)

    results = [_calculate_metrics_for_group(df, 'ALL')]
    for category in sorted(df['loan_type'].dropna().unique()):
        results.append(_calculate_metrics_for_group(df[df['loan_type'] == category], category))

    col_order = [
        'category', 'loan_count', 'total_principal', 'total_outstanding',
        'total_emi', 'weighted_avg_rate', 'total_interest', 'paid_interest',
    ]
    results_df = pd.DataFrame(results)[col_order]

    if verbose:
        print(f"="*80)
        print(f"LOAN METRICS BY CATEGORY")
        print(f"="*80)
        display_df = results_df.copy()
        display_df['weighted_avg_rate'] = display_df['weighted_avg_rate'].apply(lambda x: f"{x:.2f}%")
        print(display_df.to_string(index=False))

    return results_df


def _calculate_metrics_for_group(df: pd.DataFrame, category: str) -> dict:
    """
    Helper function to calculate category metrics for a group of loans.
    """
    metrics = {
        'category': category,
        'loan_count': len(df),
        'total_principal': df['total_principal'].sum(),
        'total_outstanding': df['remaining_principal'].sum(),
        'total_emi': df['emi'].sum(),
        'total_interest': df['total_interest'].sum(),
        'paid_interest': df['paid_interest'].sum(),
    }

    # Weighted by outstanding balance; fall back to principal once paid off
    weights = df['remaining_principal'].values.astype(np.float64)
    if weights.sum() <= 0:
        weights = df['total_principal'].values.astype(np.float64)

    if len(df) > 0 and weights.sum() > 0:
        metrics['weighted_avg_rate'] = np.average(df['interest_rate'].values, weights=weights)
    else:
        metrics['weighted_avg_rate'] = 0

    return metrics
