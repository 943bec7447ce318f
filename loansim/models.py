"""
Data models for the loan simulation engine.

Loan terms and the two kinds of what-if event are validated on construction,
so everything downstream can assume well-formed input. All models are frozen:
a simulation never mutates the loan it was given.
"""

import datetime
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

from loansim.amortization import calculate_emi, is_finite_number, to_date
from loansim.errors import InvalidInputError


class PrepaymentKind(str, Enum):
    ONE_TIME = 'one_time'
    RECURRING = 'recurring'


class Frequency(str, Enum):
    MONTHLY = 'monthly'
    YEARLY = 'yearly'
    CUSTOM = 'custom'


# Months between occurrences; CUSTOM carries its own interval
FREQUENCY_INTERVALS = {
    Frequency.MONTHLY: 1,
    Frequency.YEARLY: 12,
    Frequency.CUSTOM: None,
}


@dataclass(frozen=True)
class LoanTerms:
    """
    A loan as stored by the user.

    ``emi_amount`` may be omitted, in which case it is derived from principal,
    rate and tenure. ``outstanding_balance`` defaults to the principal.
    """

    principal: float
    interest_rate: float  # annual %
    tenure_months: int
    start_date: datetime.date
    emi_amount: Optional[float] = None
    outstanding_balance: Optional[float] = None
    loan_type: str = 'Loan'
    display_name: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        if not is_finite_number(self.principal) or self.principal <= 0:
            raise InvalidInputError(f"Principal must be positive, got {self.principal!r}")
        if not is_finite_number(self.tenure_months) or self.tenure_months <= 0 \
                or int(self.tenure_months) != self.tenure_months:
            raise InvalidInputError(
                f"Tenure must be a positive whole number of months, got {self.tenure_months!r}"
            )
        if not is_finite_number(self.interest_rate) or self.interest_rate < 0:
            raise InvalidInputError(f"Interest rate cannot be negative, got {self.interest_rate!r}")

        object.__setattr__(self, 'tenure_months', int(self.tenure_months))
        object.__setattr__(self, 'start_date', to_date(self.start_date))

        if self.emi_amount is None:
            object.__setattr__(self, 'emi_amount',
                               calculate_emi(self.principal, self.interest_rate, self.tenure_months))
        elif not is_finite_number(self.emi_amount) or self.emi_amount <= 0:
            raise InvalidInputError(f"EMI must be positive, got {self.emi_amount!r}")

        if self.outstanding_balance is None:
            object.__setattr__(self, 'outstanding_balance', self.principal)
        elif not is_finite_number(self.outstanding_balance) \
                or not 0 <= self.outstanding_balance <= self.principal:
            raise InvalidInputError(
                f"Outstanding balance {self.outstanding_balance!r} must be between 0 "
                f"and the principal {self.principal!r}"
            )

    @property
    def label(self) -> str:
        return self.display_name or self.loan_type


def _check_owner(event_loan_id, loan: LoanTerms, what: str):
    if event_loan_id is not None and loan.id is not None and event_loan_id != loan.id:
        raise InvalidInputError(f"{what} belongs to loan {event_loan_id!r}, not {loan.id!r}")


@dataclass(frozen=True)
class PrepaymentEvent:
    """
    An extra payment against principal.

    One-time events occur once; recurring events repeat every
    ``interval_months`` from their effective date until the loan is paid off.
    """

    amount: float
    effective_date: datetime.date
    kind: PrepaymentKind = PrepaymentKind.ONE_TIME
    frequency: Optional[Frequency] = None
    custom_interval_months: Optional[int] = None
    loan_id: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        if not is_finite_number(self.amount) or self.amount <= 0:
            raise InvalidInputError(f"Prepayment amount must be positive, got {self.amount!r}")
        object.__setattr__(self, 'effective_date', to_date(self.effective_date))

        try:
            kind = PrepaymentKind(self.kind)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown prepayment kind: {self.kind!r}") from exc
        object.__setattr__(self, 'kind', kind)

        if kind is PrepaymentKind.ONE_TIME:
            return

        if self.frequency is None:
            raise InvalidInputError("Recurring prepayment needs a frequency")
        try:
            frequency = Frequency(self.frequency)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown prepayment frequency: {self.frequency!r}") from exc
        object.__setattr__(self, 'frequency', frequency)

        if frequency is Frequency.CUSTOM and (
                not is_finite_number(self.custom_interval_months)
                or self.custom_interval_months < 1):
            raise InvalidInputError(
                "Custom-frequency prepayment needs custom_interval_months >= 1, "
                f"got {self.custom_interval_months!r}"
            )

    @property
    def interval_months(self) -> Optional[int]:
        """Months between occurrences, or None for a one-time event."""
        if self.kind is PrepaymentKind.ONE_TIME:
            return None
        interval = FREQUENCY_INTERVALS[self.frequency]
        return int(self.custom_interval_months) if interval is None else interval

    def check_owner(self, loan: LoanTerms):
        _check_owner(self.loan_id, loan, 'Prepayment')

    def to_record(self) -> dict:
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'amount': self.amount,
            'prepayment_date': self.effective_date.isoformat(),
            'prepayment_type': self.kind.value,
            'frequency': self.frequency.value if self.frequency else None,
            'custom_interval_months': self.custom_interval_months,
        }

    @classmethod
    def from_record(cls, record: dict) -> 'PrepaymentEvent':
        return cls(
            amount=record['amount'],
            effective_date=record['prepayment_date'],
            kind=record.get('prepayment_type', PrepaymentKind.ONE_TIME),
            frequency=record.get('frequency'),
            custom_interval_months=record.get('custom_interval_months'),
            loan_id=record.get('loan_id'),
            id=record.get('id'),
        )


@dataclass(frozen=True)
class RateChangeEvent:
    """A new annual rate in force from ``effective_date`` onwards."""

    new_rate: float
    effective_date: datetime.date
    loan_id: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        if not is_finite_number(self.new_rate) or self.new_rate < 0:
            raise InvalidInputError(f"New rate cannot be negative, got {self.new_rate!r}")
        object.__setattr__(self, 'effective_date', to_date(self.effective_date))

    def check_owner(self, loan: LoanTerms):
        _check_owner(self.loan_id, loan, 'Rate change')

    def to_record(self) -> dict:
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'new_rate': self.new_rate,
            'effective_date': self.effective_date.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict) -> 'RateChangeEvent':
        return cls(
            new_rate=record['new_rate'],
            effective_date=record['effective_date'],
            loan_id=record.get('loan_id'),
            id=record.get('id'),
        )


@dataclass(frozen=True)
class ScheduleEntry:
    """
    One simulated month.

    ``principal + interest == emi`` for every entry; on the terminal month the
    principal is clipped so that ``balance`` is exactly zero.
    """

    month: int
    date: datetime.date
    emi: float
    principal: float
    interest: float
    balance: float
    rate: float
    prepayment: Optional[float] = None

    def to_record(self) -> dict:
        record = asdict(self)
        record['date'] = self.date.isoformat()
        return record

    @classmethod
    def from_record(cls, record: dict) -> 'ScheduleEntry':
        return cls(
            month=int(record['month']),
            date=to_date(record['date']),
            emi=record['emi'],
            principal=record['principal'],
            interest=record['interest'],
            balance=record['balance'],
            rate=record.get('rate'),
            prepayment=record.get('prepayment'),
        )


@dataclass(frozen=True)
class SimulationResult:
    """Baseline and modified schedules plus the savings between them."""

    baseline: tuple
    modified: tuple
    interest_saved: float
    months_saved: int
    new_debt_free_date: datetime.date
    new_emi: float
    prepayments: tuple = field(default_factory=tuple)
    rate_changes: tuple = field(default_factory=tuple)

    def to_record(self) -> dict:
        """JSON-friendly dict in the shape of a saved simulation."""
        return {
            'original_schedule': [entry.to_record() for entry in self.baseline],
            'new_schedule': [entry.to_record() for entry in self.modified],
            'interest_saved': self.interest_saved,
            'months_saved': self.months_saved,
            'new_debt_free_date': self.new_debt_free_date.isoformat(),
            'new_emi': self.new_emi,
            'prepayments': [p.to_record() for p in self.prepayments],
            'rate_changes': [rc.to_record() for rc in self.rate_changes],
        }

    @classmethod
    def from_record(cls, record: dict) -> 'SimulationResult':
        return cls(
            baseline=tuple(ScheduleEntry.from_record(r) for r in record['original_schedule']),
            modified=tuple(ScheduleEntry.from_record(r) for r in record['new_schedule']),
            interest_saved=record['interest_saved'],
            months_saved=int(record['months_saved']),
            new_debt_free_date=to_date(record['new_debt_free_date']),
            new_emi=record['new_emi'],
            prepayments=tuple(PrepaymentEvent.from_record(r) for r in record.get('prepayments') or []),
            rate_changes=tuple(RateChangeEvent.from_record(r) for r in record.get('rate_changes') or []),
        )
