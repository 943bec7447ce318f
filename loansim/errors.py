"""
Error kinds raised by the loan engine.

All of them are ValueError subclasses, so callers that already guard
calculator calls with ``except ValueError`` keep working.
"""


class LoanEngineError(ValueError):
    """Base class for every recoverable engine error."""


class InvalidInputError(LoanEngineError):
    """Loan terms or events violate the calculator contract."""


class StalledAmortizationError(LoanEngineError):
    """The EMI does not cover the interest accruing on the balance."""


class IterationLimitExceededError(StalledAmortizationError):
    """The schedule walk hit its safety bound without paying off the loan."""
