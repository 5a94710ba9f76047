"""
FinModel — Error Taxonomy

Three kinds of failure can come out of a recalculation (plus NotFoundError
for ids that do not exist):

    ValidationError     Malformed or out-of-domain assumption / actual input.
                        Raised before any computation; nothing is persisted.
    DomainError         A mathematically undefined result (e.g. WACC <= terminal
                        growth). Rejects the DCF step only.
    ConsistencyWarning  The balance sheet does not balance for a year.
                        Never raised: carried alongside the recomputed data.
"""

from typing import Optional


class FinModelError(Exception):
    """Base class for all engine errors."""


class ValidationError(FinModelError, ValueError):
    """Input rejected before computing. `errors` maps field name -> message."""

    def __init__(self, message: str, errors: Optional[dict] = None):
        super().__init__(message)
        self.errors = errors or {}


class DomainError(FinModelError, ArithmeticError):
    """Result is mathematically undefined for the given inputs."""


class NotFoundError(FinModelError, LookupError):
    """A referenced model, scenario or statement row does not exist."""


class ConsistencyWarning(UserWarning):
    """
    Non-fatal balance sheet mismatch for a single year.

    Instances are collected into recalculation results instead of being raised,
    because actual-year entries typed in by a user may be internally inconsistent.
    """

    def __init__(self, year: int, difference: float, quarter: Optional[int] = None):
        self.year = year
        self.quarter = quarter
        self.difference = difference
        label = f"{year}" if quarter is None else f"{year}-Q{quarter}"
        super().__init__(
            f"Balance sheet for {label} is imbalanced by {difference:,.2f}"
        )

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "quarter": self.quarter,
            "difference": self.difference,
            "message": str(self),
        }
