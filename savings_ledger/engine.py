"""
Ledger Engine Module

Transactional facade over the deposit and loan books. Every operation:

1. resolves the caller's account and reads the clock exactly once,
2. applies the operator-only check for restricted operations,
3. runs inside storage.atomic(), so a failure leaves no partial writes,
4. publishes its event records to observers only after commit.

Operations are serialised by a re-entrant lock; each one is a single
atomic transaction against the caller's own deposit and loan books.
"""

import functools
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .access import AccessController, IdentityProvider
from .audit import EventLog
from .calendar_engine import CivilDateTime
from .clock import SystemClock
from .config import LedgerConfig, get_config
from .deposits import Deposit, DepositBook, DepositListing, WithdrawalResult
from .events import EventDispatcher
from .exceptions import BlockedError, LedgerError
from .loans import BorrowingCapacity, Loan, LoanBook, LoanListing
from .logging_config import get_logger, log_action
from .storage import StorageInterface, create_storage


@dataclass(frozen=True)
class TransactionContext:
    """Caller and time fixed for the duration of one ledger transaction"""
    caller: str
    now: int


def ledger_operation(action: str, restricted: bool = False, read_only: bool = False):
    """
    Run a LedgerEngine method as one ledger transaction

    The wrapped method receives a TransactionContext as its first argument
    after self.

    Args:
        action: Operation name used in logs and access errors
        restricted: Only the operator account may call it
        read_only: Skip the storage transaction for pure reads
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(self: 'LedgerEngine', *args, **kwargs):
            with self._lock:
                ctx = TransactionContext(caller=self.identity(), now=self.clock())
                try:
                    if restricted:
                        self.access.require_operator(ctx.caller, action)
                    if read_only:
                        return func(self, ctx, *args, **kwargs)
                    with self.storage.atomic():
                        result = func(self, ctx, *args, **kwargs)
                    committed = self.event_log.take_pending()
                except LedgerError as e:
                    self.event_log.discard_pending()
                    log_action(
                        self.logger, "warning", f"{action} rejected: {e.message}",
                        account=ctx.caller, action=action,
                        details={"error": type(e).__name__, **e.details}
                    )
                    raise
                except Exception:
                    self.event_log.discard_pending()
                    self.logger.exception(f"{action} failed unexpectedly")
                    raise

            # Observers run outside the lock, on this transaction's batch only
            self.event_log.publish(committed)
            return result
        return wrapper
    return decorator


class LedgerEngine:
    """
    Savings-and-lending ledger: term deposits and deposit-backed loans
    """

    def __init__(
        self,
        identity: IdentityProvider,
        storage: Optional[StorageInterface] = None,
        config: Optional[LedgerConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        dispatcher: Optional[EventDispatcher] = None
    ):
        self.config = config or get_config()
        self.identity = identity
        self.storage = storage or create_storage(self.config.database_url)
        self.clock = clock or SystemClock()
        self.dispatcher = dispatcher

        self.access = AccessController(self.config.operator_account)
        self.event_log = EventLog(self.storage, dispatcher, enabled=self.config.enable_event_log)
        self.deposits = DepositBook(self.storage, self.event_log, self.config)
        self.loans = LoanBook(self.storage, self.event_log, self.config, self.deposits)

        self.logger = get_logger("savings_ledger.engine")
        self._lock = threading.RLock()

    # --- Deposit lifecycle ---

    @ledger_operation("deposit", restricted=True)
    def deposit(self, ctx: TransactionContext, amount: int, term_months: int) -> Tuple[int, Deposit]:
        """Open a term deposit for the caller; returns (deposit index, Deposit)"""
        return self.deposits.open_deposit(ctx.caller, ctx.now, amount, term_months)

    @ledger_operation("withdraw", restricted=True)
    def withdraw(self, ctx: TransactionContext, deposit_index: int) -> WithdrawalResult:
        """
        Withdraw (or, past the grace window, reinvest) a deposit

        Raises:
            BlockedError: If any of the caller's loans still has a balance
            NotFoundError: If the deposit slot is empty
        """
        if self.loans.has_outstanding_loans(ctx.caller):
            raise BlockedError(
                "Cannot withdraw while a loan is outstanding",
                {"account": ctx.caller,
                 "outstanding_balance": self.loans.outstanding_balance(ctx.caller)}
            )
        return self.deposits.withdraw(ctx.caller, ctx.now, deposit_index)

    @ledger_operation("report_start_time")
    def report_start_time(self, ctx: TransactionContext, deposit_index: int) -> CivilDateTime:
        return self.deposits.report_start_time(ctx.caller, ctx.now, deposit_index)

    @ledger_operation("report_maturity")
    def report_maturity(self, ctx: TransactionContext, deposit_index: int) -> CivilDateTime:
        return self.deposits.report_maturity(ctx.caller, ctx.now, deposit_index)

    @ledger_operation("list_deposits", read_only=True)
    def list_deposits(self, ctx: TransactionContext) -> DepositListing:
        """Amounts, start times, terms and rates of the caller's deposit slots"""
        return self.deposits.list_deposits(ctx.caller)

    @ledger_operation("get_deposit", read_only=True)
    def get_deposit(self, ctx: TransactionContext, deposit_index: int) -> Deposit:
        return self.deposits.get_deposit(ctx.caller, deposit_index)

    # --- Loan lifecycle ---

    @ledger_operation("check_borrowing_capacity", restricted=True)
    def check_borrowing_capacity(self, ctx: TransactionContext, deposit_index: int) -> BorrowingCapacity:
        return self.loans.check_borrowing_capacity(ctx.caller, ctx.now, deposit_index)

    @ledger_operation("borrow")
    def borrow(
        self,
        ctx: TransactionContext,
        deposit_index: int,
        loan_amount: int,
        duration_months: int
    ) -> Tuple[int, Loan]:
        """Take a loan against one of the caller's deposits; returns (loan index, Loan)"""
        return self.loans.borrow(ctx.caller, ctx.now, deposit_index, loan_amount, duration_months)

    @ledger_operation("repay_loan", restricted=True)
    def repay_loan(self, ctx: TransactionContext, loan_index: int, amount: int) -> Loan:
        return self.loans.repay(ctx.caller, ctx.now, loan_index, amount)

    @ledger_operation("list_loans", read_only=True)
    def list_loans(self, ctx: TransactionContext) -> LoanListing:
        """Principals, rates, start times and durations of the caller's loan slots"""
        return self.loans.list_loans(ctx.caller)

    @ledger_operation("get_loan", read_only=True)
    def get_loan(self, ctx: TransactionContext, loan_index: int) -> Loan:
        return self.loans.get_loan(ctx.caller, loan_index)

    @ledger_operation("outstanding_balance", read_only=True)
    def outstanding_balance(self, ctx: TransactionContext) -> int:
        return self.loans.outstanding_balance(ctx.caller)

    def close(self) -> None:
        self.storage.close()
