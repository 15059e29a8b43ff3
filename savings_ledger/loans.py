"""
Loan Module

Deposit-backed loans: borrowing capacity checks, origination against a
single deposit, partial repayment and closure. Each deposit index can back
exactly one loan for its whole lifetime; the collateral lock is never
released, even after the loan is repaid.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, NamedTuple, Tuple

from .audit import EventLog
from .config import LedgerConfig
from .deposits import DepositBook
from .events import LedgerEventType
from .exceptions import ConflictError, LimitError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .products import (
    RATE_DESCRIPTION, borrow_options, loan_rate, max_loan_amount, total_repayment_due
)
from .storage import StorageInterface


class LoanState(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"    # Balance outstanding
    CLOSED = "closed"    # Fully repaid, slot cleared


class CollateralLock(Enum):
    """Collateral state of a deposit index"""
    UNUSED = "unused"
    LOCKED = "locked"    # Has backed a loan; never released


@dataclass
class Loan:
    """Loan held in an account's loan book"""
    principal: int
    interest_rate: int                  # Whole percent per year
    start_time: int
    term_months: int
    remaining_balance: int
    total_repayment_due: int
    deposit_index: int
    state: LoanState = LoanState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state == LoanState.ACTIVE

    @property
    def is_paid_off(self) -> bool:
        return self.remaining_balance == 0

    def to_dict(self) -> Dict:
        return {
            'principal': self.principal,
            'interest_rate': self.interest_rate,
            'start_time': self.start_time,
            'term_months': self.term_months,
            'remaining_balance': self.remaining_balance,
            'total_repayment_due': self.total_repayment_due,
            'deposit_index': self.deposit_index,
            'state': self.state.value
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Loan':
        data = dict(data)
        data['state'] = LoanState(data['state'])
        return cls(**data)


@dataclass
class BorrowingCapacity:
    """What a deposit can currently back"""
    max_loan_amount: int
    remaining_months: int
    options: List[int]
    rate_description: str


class LoanListing(NamedTuple):
    """Parallel views over an account's loan book"""
    principals: List[int]
    rates: List[int]
    start_times: List[int]
    durations: List[int]


class LoanBook:
    """
    Manages loan books, collateral locks and cached borrowing options
    """

    def __init__(
        self,
        storage: StorageInterface,
        event_log: EventLog,
        config: LedgerConfig,
        deposit_book: DepositBook
    ):
        self.storage = storage
        self.event_log = event_log
        self.config = config
        self.deposit_book = deposit_book
        self.logger = get_logger("savings_ledger.loans")

        self.books_table = "loan_books"
        self.locks_table = "loan_locks"
        self.options_table = "borrow_options"

    # --- Persistence ---

    def get_loans(self, account: str) -> List[Loan]:
        data = self.storage.load(self.books_table, account)
        if not data:
            return []
        return [Loan.from_dict(slot) for slot in data['slots']]

    def _save_loans(self, account: str, loans: List[Loan]) -> None:
        self.storage.save(self.books_table, account, {
            'account': account,
            'slots': [loan.to_dict() for loan in loans]
        })

    def get_loan(self, account: str, index: int) -> Loan:
        loans = self.get_loans(account)
        if index < 0 or index >= len(loans):
            raise NotFoundError(
                f"Loan {index} not found",
                {"account": account, "loan_index": index}
            )
        return loans[index]

    def collateral_lock(self, account: str, deposit_index: int) -> CollateralLock:
        data = self.storage.load(self.locks_table, account) or {}
        value = data.get('locks', {}).get(str(deposit_index), CollateralLock.UNUSED.value)
        return CollateralLock(value)

    def _lock_collateral(self, account: str, deposit_index: int) -> None:
        data = self.storage.load(self.locks_table, account) or {'account': account, 'locks': {}}
        data['locks'][str(deposit_index)] = CollateralLock.LOCKED.value
        self.storage.save(self.locks_table, account, data)

    def cached_options(self, account: str) -> List[int]:
        data = self.storage.load(self.options_table, account)
        return data['options'] if data else []

    def outstanding_balance(self, account: str) -> int:
        return sum(loan.remaining_balance for loan in self.get_loans(account))

    def has_outstanding_loans(self, account: str) -> bool:
        return any(loan.remaining_balance > 0 for loan in self.get_loans(account))

    # --- Operations ---

    def check_borrowing_capacity(self, account: str, now: int, deposit_index: int) -> BorrowingCapacity:
        """
        Work out how much and for how long a deposit can back a loan

        The duration options are cached for the account and consumed by the
        next borrow() call.

        Raises:
            NotFoundError: If the deposit index is outside the book
            ValidationError: If the deposit was withdrawn or has no term left
        """
        deposit = self.deposit_book.get_deposit(account, deposit_index)
        if deposit.amount == 0:
            raise ValidationError(
                f"Deposit {deposit_index} has been withdrawn",
                {"account": account, "deposit_index": deposit_index}
            )

        maturity = self.deposit_book.borrowing_maturity(deposit)
        if maturity <= now:
            raise ValidationError(
                f"Deposit {deposit_index} has reached the end of its term",
                {"account": account, "deposit_index": deposit_index, "maturity": maturity}
            )

        remaining_months = (maturity - now) // self.config.borrow_seconds_per_term_month
        options = borrow_options(remaining_months)
        self.storage.save(self.options_table, account, {
            'account': account,
            'deposit_index': deposit_index,
            'options': options
        })

        capacity = BorrowingCapacity(
            max_loan_amount=max_loan_amount(deposit.amount, self.config.loan_to_value_percent),
            remaining_months=remaining_months,
            options=options,
            rate_description=RATE_DESCRIPTION
        )

        self.event_log.emit(LedgerEventType.VALIDITY_CHECKED, account, now, {
            "max_loan": capacity.max_loan_amount,
            "remaining_months": remaining_months,
            "options": options,
            "rate_description": capacity.rate_description
        })
        return capacity

    def borrow(
        self,
        account: str,
        now: int,
        deposit_index: int,
        loan_amount: int,
        duration_months: int
    ) -> Tuple[int, Loan]:
        """
        Originate a loan backed by a deposit

        Args:
            account: Borrowing account
            now: Transaction time
            deposit_index: Deposit pledged as collateral
            loan_amount: Principal requested
            duration_months: One of the options from check_borrowing_capacity

        Returns:
            Tuple of (loan index, Loan)

        Raises:
            ConflictError: If the deposit has already backed a loan
            NotFoundError: If the deposit does not exist or was withdrawn
            LimitError: If the amount exceeds the loan-to-value cap
            ValidationError: If the amount or duration is not acceptable
        """
        if self.collateral_lock(account, deposit_index) == CollateralLock.LOCKED:
            raise ConflictError(
                f"Deposit {deposit_index} has already been used as collateral",
                {"account": account, "deposit_index": deposit_index}
            )

        deposit = self.deposit_book.get_deposit(account, deposit_index)
        if deposit.amount == 0:
            raise NotFoundError(
                f"Deposit {deposit_index} has been withdrawn",
                {"account": account, "deposit_index": deposit_index}
            )

        if loan_amount <= 0:
            raise ValidationError("Loan amount must be positive", {"loan_amount": loan_amount})

        max_loan = max_loan_amount(deposit.amount, self.config.loan_to_value_percent)
        if loan_amount > max_loan:
            raise LimitError(
                f"Loan amount exceeds {self.config.loan_to_value_percent}% of the deposit",
                {"loan_amount": loan_amount, "max_loan_amount": max_loan}
            )

        rate = loan_rate(deposit.interest_rate, loan_amount, max_loan)

        options = self.cached_options(account)
        if duration_months not in options:
            raise ValidationError(
                f"Loan duration of {duration_months} months is not available",
                {"duration_months": duration_months, "options": options}
            )

        total_due = total_repayment_due(loan_amount, rate, duration_months)
        loan = Loan(
            principal=loan_amount,
            interest_rate=rate,
            start_time=now,
            term_months=duration_months,
            remaining_balance=total_due,
            total_repayment_due=total_due,
            deposit_index=deposit_index
        )

        loans = self.get_loans(account)
        loans.append(loan)
        self._save_loans(account, loans)
        self._lock_collateral(account, deposit_index)
        index = len(loans) - 1

        self.event_log.emit(LedgerEventType.LOAN_TAKEN, account, now, {
            "account": account,
            "principal": loan_amount,
            "rate": rate,
            "start_time": now,
            "duration": duration_months,
            "total_due": total_due
        })
        log_action(
            self.logger, "info", f"Loan originated: {loan_amount} over {duration_months} months",
            account=account, action="borrow", resource=f"loan:{index}",
            details={"deposit_index": deposit_index, "rate": rate, "total_due": total_due}
        )
        return index, loan

    def repay(self, account: str, now: int, loan_index: int, amount: int) -> Loan:
        """
        Apply a repayment to a loan, closing it once the balance reaches zero

        Raises:
            NotFoundError: If the loan does not exist or is closed
            ValidationError: If the amount is not positive or exceeds the balance
        """
        loans = self.get_loans(account)
        if loan_index < 0 or loan_index >= len(loans) or not loans[loan_index].is_active:
            raise NotFoundError(
                f"Loan {loan_index} not found or already closed",
                {"account": account, "loan_index": loan_index}
            )
        loan = loans[loan_index]

        if amount <= 0:
            raise ValidationError("Repayment amount must be positive", {"amount": amount})
        if amount > loan.remaining_balance:
            raise ValidationError(
                "Repayment exceeds the remaining balance",
                {"amount": amount, "remaining_balance": loan.remaining_balance}
            )

        loan.remaining_balance -= amount
        self.event_log.emit(LedgerEventType.LOAN_REPAID, account, now, {
            "account": account,
            "paid": amount,
            "remaining_balance": loan.remaining_balance
        })

        if loan.is_paid_off:
            closed = Loan(
                principal=0,
                interest_rate=0,
                start_time=0,
                term_months=0,
                remaining_balance=0,
                total_repayment_due=0,
                deposit_index=loan.deposit_index,
                state=LoanState.CLOSED
            )
            loans[loan_index] = closed
            self.event_log.emit(LedgerEventType.LOAN_CLOSED, account, now, {
                "account": account,
                "loan_index": loan_index
            })
            loan = closed

        self._save_loans(account, loans)
        log_action(
            self.logger, "info", f"Loan repayment: {amount}",
            account=account, action="repay_loan", resource=f"loan:{loan_index}",
            details={"remaining_balance": loan.remaining_balance, "state": loan.state.value}
        )
        return loan

    def list_loans(self, account: str) -> LoanListing:
        loans = self.get_loans(account)
        return LoanListing(
            principals=[l.principal for l in loans],
            rates=[l.interest_rate for l in loans],
            start_times=[l.start_time for l in loans],
            durations=[l.term_months for l in loans]
        )
