"""Tests for loansim/models.py"""

import datetime

import pytest

from loansim.errors import InvalidInputError
from loansim.models import (
    Frequency,
    LoanTerms,
    PrepaymentEvent,
    PrepaymentKind,
    RateChangeEvent,
    ScheduleEntry,
)


class TestLoanTerms:

    def test_emi_derived_when_missing(self):
        loan = LoanTerms(principal=1_200_000, interest_rate=9.0, tenure_months=120,
                         start_date=datetime.date(2024, 1, 5))
        assert loan.emi_amount == 15201.0

    def test_stored_emi_kept(self):
        loan = LoanTerms(principal=1_200_000, interest_rate=9.0, tenure_months=120,
                         start_date=datetime.date(2024, 1, 5), emi_amount=16_000)
        assert loan.emi_amount == 16_000

    def test_outstanding_defaults_to_principal(self):
        loan = LoanTerms(principal=500_000, interest_rate=8.0, tenure_months=60,
                         start_date='2023-06-10')
        assert loan.outstanding_balance == 500_000
        assert loan.start_date == datetime.date(2023, 6, 10)

    def test_outstanding_above_principal_raises(self):
        with pytest.raises(InvalidInputError, match="Outstanding balance"):
            LoanTerms(principal=500_000, interest_rate=8.0, tenure_months=60,
                      start_date='2023-06-10', outstanding_balance=500_001)

    def test_negative_outstanding_raises(self):
        with pytest.raises(InvalidInputError, match="Outstanding balance"):
            LoanTerms(principal=500_000, interest_rate=8.0, tenure_months=60,
                      start_date='2023-06-10', outstanding_balance=-1)

    @pytest.mark.parametrize("kwargs, message", [
        ({'principal': 0}, "Principal"),
        ({'principal': -100}, "Principal"),
        ({'tenure_months': 0}, "Tenure"),
        ({'tenure_months': 12.5}, "Tenure"),
        ({'interest_rate': -0.5}, "negative"),
        ({'start_date': '2024-13-45'}, "Malformed date"),
        ({'emi_amount': 0}, "EMI"),
        ({'principal': float('nan')}, "Principal"),
        ({'principal': float('inf')}, "Principal"),
        ({'interest_rate': float('nan')}, "negative"),
        ({'tenure_months': float('nan')}, "Tenure"),
        ({'emi_amount': float('nan')}, "EMI"),
        ({'outstanding_balance': float('nan')}, "Outstanding balance"),
    ])
    def test_invalid_terms_raise(self, kwargs, message):
        terms = {
            'principal': 100_000,
            'interest_rate': 10.0,
            'tenure_months': 12,
            'start_date': '2024-01-01',
        }
        terms.update(kwargs)
        with pytest.raises(InvalidInputError, match=message):
            LoanTerms(**terms)

    def test_label_prefers_display_name(self):
        loan = LoanTerms(principal=100_000, interest_rate=10.0, tenure_months=12,
                         start_date='2024-01-01', loan_type='Home Loan',
                         display_name='Main House')
        assert loan.label == 'Main House'

    def test_label_falls_back_to_category(self):
        loan = LoanTerms(principal=100_000, interest_rate=10.0, tenure_months=12,
                         start_date='2024-01-01', loan_type='Car Loan')
        assert loan.label == 'Car Loan'

    def test_frozen(self):
        loan = LoanTerms(principal=100_000, interest_rate=10.0, tenure_months=12,
                         start_date='2024-01-01')
        with pytest.raises(AttributeError):
            loan.principal = 1


class TestPrepaymentEvent:

    def test_one_time_has_no_interval(self):
        event = PrepaymentEvent(amount=200_000, effective_date='2024-12-05')
        assert event.kind is PrepaymentKind.ONE_TIME
        assert event.interval_months is None

    def test_string_tags_accepted(self):
        event = PrepaymentEvent(amount=5_000, effective_date='2024-01-05',
                                kind='recurring', frequency='monthly')
        assert event.kind is PrepaymentKind.RECURRING
        assert event.frequency is Frequency.MONTHLY
        assert event.interval_months == 1

    def test_yearly_interval(self):
        event = PrepaymentEvent(amount=50_000, effective_date='2024-01-05',
                                kind=PrepaymentKind.RECURRING, frequency=Frequency.YEARLY)
        assert event.interval_months == 12

    def test_custom_interval(self):
        event = PrepaymentEvent(amount=10_000, effective_date='2024-01-05',
                                kind=PrepaymentKind.RECURRING, frequency=Frequency.CUSTOM,
                                custom_interval_months=3)
        assert event.interval_months == 3

    def test_custom_without_interval_raises(self):
        with pytest.raises(InvalidInputError, match="custom_interval_months"):
            PrepaymentEvent(amount=10_000, effective_date='2024-01-05',
                            kind=PrepaymentKind.RECURRING, frequency=Frequency.CUSTOM)

    def test_recurring_without_frequency_raises(self):
        with pytest.raises(InvalidInputError, match="needs a frequency"):
            PrepaymentEvent(amount=10_000, effective_date='2024-01-05', kind='recurring')

    def test_unknown_frequency_raises(self):
        with pytest.raises(InvalidInputError, match="Unknown prepayment frequency"):
            PrepaymentEvent(amount=10_000, effective_date='2024-01-05',
                            kind='recurring', frequency='fortnightly')

    def test_non_positive_amount_raises(self):
        with pytest.raises(InvalidInputError, match="amount must be positive"):
            PrepaymentEvent(amount=0, effective_date='2024-01-05')

    def test_nan_amount_raises(self):
        with pytest.raises(InvalidInputError, match="amount must be positive"):
            PrepaymentEvent(amount=float('nan'), effective_date='2024-01-05')

    def test_record_round_trip(self):
        event = PrepaymentEvent(amount=10_000, effective_date='2024-01-05',
                                kind='recurring', frequency='custom',
                                custom_interval_months=6, loan_id='loan-1', id='p-1')
        record = event.to_record()
        assert record['prepayment_type'] == 'recurring'
        assert record['prepayment_date'] == '2024-01-05'
        assert PrepaymentEvent.from_record(record) == event


class TestRateChangeEvent:

    def test_negative_rate_raises(self):
        with pytest.raises(InvalidInputError, match="cannot be negative"):
            RateChangeEvent(new_rate=-1, effective_date='2024-01-05')

    def test_nan_rate_raises(self):
        with pytest.raises(InvalidInputError, match="cannot be negative"):
            RateChangeEvent(new_rate=float('nan'), effective_date='2024-01-05')

    def test_zero_rate_allowed(self):
        event = RateChangeEvent(new_rate=0, effective_date='2024-01-05')
        assert event.new_rate == 0

    def test_record_round_trip(self):
        event = RateChangeEvent(new_rate=10.0, effective_date='2025-12-05', loan_id='loan-1')
        assert RateChangeEvent.from_record(event.to_record()) == event


class TestScheduleEntry:

    def test_record_uses_iso_date(self):
        entry = ScheduleEntry(month=1, date=datetime.date(2024, 1, 5), emi=15201.0,
                              principal=6201.0, interest=9000.0, balance=1_193_799.0,
                              rate=9.0)
        record = entry.to_record()
        assert record['date'] == '2024-01-05'
        assert record['prepayment'] is None
        assert ScheduleEntry.from_record(record) == entry
