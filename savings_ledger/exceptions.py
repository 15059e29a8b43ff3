"""
Ledger Exceptions

Every failure aborts the whole ledger transaction. All errors derive from
ValueError so callers can keep treating bad input the usual way.
"""

from typing import Any, Dict, Optional


class LedgerError(ValueError):
    """Base exception for all ledger errors"""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
    
    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(LedgerError):
    """Malformed or out-of-policy input (amount, term, duration)"""
    pass


class NotFoundError(LedgerError):
    """Referenced deposit or loan slot does not exist or is empty"""
    pass


class ConflictError(LedgerError):
    """Deposit has already been used as loan collateral"""
    pass


class LimitError(LedgerError):
    """Loan exceeds the loan-to-value cap"""
    pass


class BlockedError(LedgerError):
    """Withdrawal attempted while a loan is outstanding"""
    pass


class AccessDeniedError(LedgerError):
    """Caller is not allowed to run an operator-only operation"""
    pass


class DomainError(LedgerError):
    """Calendar input outside the supported domain"""
    pass


class RangeError(LedgerError):
    """Calendar arithmetic moved time the wrong way or out of range"""
    pass
