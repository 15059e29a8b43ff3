"""
Product Policy Module

Term deposit product definitions: the allowed terms, the tiered rate table
keyed by amount band and term, and the loan rate add-on applied to
deposit-backed loans. Rates are whole percent.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .exceptions import ValidationError


class DepositTerm(Enum):
    """Committed deposit terms, in months"""
    T2 = 2
    T6 = 6
    T9 = 9
    T12 = 12

    @property
    def months(self) -> int:
        return self.value

    @classmethod
    def from_months(cls, months: int) -> 'DepositTerm':
        """
        Resolve a term code from a month count

        Raises:
            ValidationError: If months is not an offered term
        """
        for term in cls:
            if term.value == months:
                return term
        raise ValidationError(
            f"Unsupported deposit term: {months} months",
            {"term_months": months, "allowed": [t.value for t in cls]}
        )


@dataclass(frozen=True)
class AmountBand:
    """Deposit amount band; upper bound inclusive, None means unbounded"""
    name: str
    max_amount: Optional[int]

    def contains(self, amount: int) -> bool:
        return self.max_amount is None or amount <= self.max_amount


AMOUNT_BANDS: Tuple[AmountBand, ...] = (
    AmountBand("standard", 100_000_000),
    AmountBand("premium", 500_000_000),
    AmountBand("private", None),
)

# band name -> term -> whole percent
DEPOSIT_RATE_TABLE: Dict[str, Dict[DepositTerm, int]] = {
    "standard": {DepositTerm.T2: 10, DepositTerm.T6: 15, DepositTerm.T9: 20, DepositTerm.T12: 25},
    "premium": {DepositTerm.T2: 15, DepositTerm.T6: 20, DepositTerm.T9: 25, DepositTerm.T12: 30},
    "private": {DepositTerm.T2: 20, DepositTerm.T6: 25, DepositTerm.T9: 30, DepositTerm.T12: 35},
}

# Loan rate = deposit rate + add-on
LOAN_ADD_ON_LOW = 20   # loan <= 50% of the maximum loan
LOAN_ADD_ON_HIGH = 30

RATE_DESCRIPTION = (
    "Loan rate is the deposit rate plus 2% when borrowing at most half of "
    "the maximum loan amount, otherwise plus 3%"
)


def amount_band(amount: int) -> AmountBand:
    for band in AMOUNT_BANDS:
        if band.contains(amount):
            return band
    # The last band is unbounded
    return AMOUNT_BANDS[-1]


def deposit_rate(amount: int, term: DepositTerm) -> int:
    """Locked-in deposit rate for an amount and term"""
    return DEPOSIT_RATE_TABLE[amount_band(amount).name][term]


def max_loan_amount(deposit_amount: int, loan_to_value_percent: int) -> int:
    """Largest principal a deposit can back, rounded down"""
    return deposit_amount * loan_to_value_percent // 100


def loan_rate(deposit_rate_percent: int, loan_amount: int, max_loan: int) -> int:
    """Deposit rate plus the add-on for the share of the cap being borrowed"""
    if loan_amount * 2 <= max_loan:
        return deposit_rate_percent + LOAN_ADD_ON_LOW
    return deposit_rate_percent + LOAN_ADD_ON_HIGH


def total_repayment_due(principal: int, rate_percent: int, duration_months: int) -> int:
    """Simple interest over the loan duration, rounded down"""
    return principal + principal * rate_percent * duration_months // (100 * 12)


def borrow_options(remaining_months: int) -> List[int]:
    """Loan durations available for a deposit with the given months left"""
    return list(range(1, remaining_months + 1))
