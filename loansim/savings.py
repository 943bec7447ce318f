"""
What-if simulation and savings analysis.

Functions:
    calculate_savings — diff a baseline schedule against a modified one
    simulate — baseline + modified schedule for a set of hypothetical events
    compare_simulations — side-by-side metrics for several named simulations
    difference_between — absolute differences between two simulations
"""

from typing import Iterable, Optional

import pandas as pd

from loansim.errors import InvalidInputError
from loansim.models import LoanTerms, PrepaymentEvent, RateChangeEvent, SimulationResult
from loansim.schedule import walk_schedule, generate_schedule, total_interest


def calculate_savings(baseline: list, modified: list) -> dict:
    """
    Interest and time saved by the modified schedule.

    Returns
    -------
    dict with keys: 'interest_saved', 'months_saved', 'new_debt_free_date'
    """
    if not modified:
        raise InvalidInputError("Modified schedule is empty")

    return {
        'interest_saved': total_interest(baseline) - total_interest(modified),
        'months_saved': len(baseline) - len(modified),
        'new_debt_free_date': modified[-1].date,
    }


def simulate(loan: LoanTerms,
             prepayments: Optional[Iterable[PrepaymentEvent]] = None,
             rate_changes: Optional[Iterable[RateChangeEvent]] = None) -> SimulationResult:
    """
    Run the baseline and the what-if schedule from the same loan snapshot.

    Parameters
    ----------
    loan : LoanTerms
        Loan terms as stored.
    prepayments : iterable of PrepaymentEvent, optional
        Hypothetical extra payments.
    rate_changes : iterable of RateChangeEvent, optional
        Hypothetical rate changes.

    Returns
    -------
    SimulationResult. ``new_emi`` is the EMI in force at the end of the
    modified schedule (differs from the loan's EMI after a rate change).
    """
    prepayments = tuple(prepayments or ())
    rate_changes = tuple(rate_changes or ())

    baseline = generate_schedule(loan)
    modified, final_state = walk_schedule(loan, prepayments, rate_changes)

    savings = calculate_savings(baseline, modified)

    return SimulationResult(
        baseline=tuple(baseline),
        modified=tuple(modified),
        interest_saved=savings['interest_saved'],
        months_saved=savings['months_saved'],
        new_debt_free_date=savings['new_debt_free_date'],
        new_emi=final_state.emi,
        prepayments=prepayments,
        rate_changes=rate_changes,
    )


def compare_simulations(simulations: dict) -> pd.DataFrame:
    """
    Headline metrics for several named simulations of the same loan.

    Parameters
    ----------
    simulations : dict
        Maps simulation name to SimulationResult.

    Returns
    -------
    pd.DataFrame with columns: simulation, interest_saved, months_saved,
        new_debt_free_date, new_emi, baseline_interest, modified_interest,
        total_prepaid, months
    """
    results = []

    for name, result in simulations.items():
        total_prepaid = sum(entry.prepayment or 0.0 for entry in result.modified)

        results.append({
            'simulation': name,
            'interest_saved': round(result.interest_saved, 2),
            'months_saved': result.months_saved,
            'new_debt_free_date': result.new_debt_free_date,
            'new_emi': result.new_emi,
            'baseline_interest': round(total_interest(result.baseline), 2),
            'modified_interest': round(total_interest(result.modified), 2),
            'total_prepaid': round(total_prepaid, 2),
            'months': len(result.modified),
        })

    columns = [
        'simulation', 'interest_saved', 'months_saved', 'new_debt_free_date', 'new_emi',
        'baseline_interest', 'modified_interest', 'total_prepaid', 'months',
    ]
    return pd.DataFrame(results, columns=columns)


def difference_between(first: SimulationResult, second: SimulationResult) -> dict:
    """
    Absolute differences between two simulations' headline metrics.

    Returns
    -------
    dict with keys: 'interest_saved', 'months_saved', 'debt_free_days', 'new_emi'
    """
    return {
        'interest_saved': abs(second.interest_saved - first.interest_saved),
        'months_saved': abs(second.months_saved - first.months_saved),
        'debt_free_days': abs((second.new_debt_free_date - first.new_debt_free_date).days),
        'new_emi': abs(second.new_emi - first.new_emi),
    }
