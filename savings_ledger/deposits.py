"""
Deposit Module

Term deposit lifecycle: opening a deposit at the tiered rate, interest
accrual, withdrawal, automatic reinvestment of matured deposits left past
their grace window, and civil-time reporting of start and maturity dates.

Deposits live in an index-addressed book per account. A withdrawn deposit
keeps its slot (amount 0) so external indices stay stable.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, NamedTuple, Tuple

from . import calendar_engine
from .audit import EventLog
from .config import LedgerConfig
from .events import LedgerEventType
from .exceptions import NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .products import DepositTerm, deposit_rate
from .storage import StorageInterface


class DepositState(Enum):
    """Deposit slot states"""
    ACTIVE = "active"          # Earning interest, usable as collateral
    WITHDRAWN = "withdrawn"    # Slot cleared, amount is zero


@dataclass
class Deposit:
    """Term deposit held in an account's deposit book"""
    amount: int
    start_time: int
    term: DepositTerm
    interest_rate: int              # Whole percent, locked in at opening
    state: DepositState = DepositState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state == DepositState.ACTIVE and self.amount > 0

    @property
    def term_months(self) -> int:
        return self.term.months

    def to_dict(self) -> Dict:
        return {
            'amount': self.amount,
            'start_time': self.start_time,
            'term': self.term.value,
            'interest_rate': self.interest_rate,
            'state': self.state.value
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Deposit':
        return cls(
            amount=data['amount'],
            start_time=data['start_time'],
            term=DepositTerm(data['term']),
            interest_rate=data['interest_rate'],
            state=DepositState(data['state'])
        )


@dataclass
class WithdrawalResult:
    """Outcome of a withdrawal request"""
    total: int          # Principal plus interest paid out or rolled over
    message: str
    interest: int
    reinvested: bool


class DepositListing(NamedTuple):
    """Parallel views over an account's deposit book"""
    amounts: List[int]
    start_times: List[int]
    terms: List[int]
    rates: List[int]


class DepositBook:
    """
    Manages the deposit books of all accounts
    """

    REINVESTED_MESSAGE = "Deposit matured and was reinvested"
    WITHDRAWN_MESSAGE = "Deposit withdrawn"

    def __init__(self, storage: StorageInterface, event_log: EventLog, config: LedgerConfig):
        self.storage = storage
        self.event_log = event_log
        self.config = config
        self.logger = get_logger("savings_ledger.deposits")

        self.books_table = "deposit_books"

    # --- Persistence ---

    def get_deposits(self, account: str) -> List[Deposit]:
        data = self.storage.load(self.books_table, account)
        if not data:
            return []
        return [Deposit.from_dict(slot) for slot in data['slots']]

    def _save_deposits(self, account: str, deposits: List[Deposit]) -> None:
        self.storage.save(self.books_table, account, {
            'account': account,
            'slots': [deposit.to_dict() for deposit in deposits]
        })

    def get_deposit(self, account: str, index: int) -> Deposit:
        """
        Get a deposit slot by index, cleared slots included

        Raises:
            NotFoundError: If the index is outside the book
        """
        deposits = self.get_deposits(account)
        if index < 0 or index >= len(deposits):
            raise NotFoundError(
                f"Deposit {index} not found",
                {"account": account, "deposit_index": index}
            )
        return deposits[index]

    # --- Policy ---

    def required_hold_time(self, deposit: Deposit) -> int:
        return deposit.term_months * self.config.hold_seconds_per_term_month

    def maturity_time(self, deposit: Deposit) -> int:
        """Maturity used for reporting and the hold period"""
        return deposit.start_time + self.required_hold_time(deposit)

    def borrowing_maturity(self, deposit: Deposit) -> int:
        """Maturity used for borrowing windows"""
        return deposit.start_time + deposit.term_months * self.config.borrow_seconds_per_term_month

    def accrued_interest(self, amount: int, rate: int, time_held: int) -> int:
        """
        Simple interest: rate percent per elapsed interest period, applied
        linearly and rounded down
        """
        return amount * rate * time_held // (100 * self.config.interest_period_seconds)

    def is_past_grace(self, time_held: int, required_hold: int) -> bool:
        return time_held * 100 >= required_hold * self.config.reinvest_threshold_percent

    # --- Operations ---

    def open_deposit(self, account: str, now: int, amount: int, term_months: int) -> Tuple[int, Deposit]:
        """
        Open a new term deposit

        Args:
            account: Owning account
            now: Transaction time
            amount: Principal in minor units
            term_months: One of the offered terms (2, 6, 9, 12)

        Returns:
            Tuple of (deposit index, Deposit)

        Raises:
            ValidationError: If the amount is below the minimum or the term is not offered
        """
        if amount < self.config.minimum_deposit:
            raise ValidationError(
                f"Deposit amount must be at least {self.config.minimum_deposit}",
                {"amount": amount, "minimum": self.config.minimum_deposit}
            )
        term = DepositTerm.from_months(term_months)

        deposit = Deposit(
            amount=amount,
            start_time=now,
            term=term,
            interest_rate=deposit_rate(amount, term)
        )

        deposits = self.get_deposits(account)
        deposits.append(deposit)
        self._save_deposits(account, deposits)
        index = len(deposits) - 1

        self.event_log.emit(LedgerEventType.DEPOSITED, account, now, {
            "account": account,
            "amount": deposit.amount,
            "term": term.months,
            "rate": deposit.interest_rate,
            "start_time": deposit.start_time
        })

        log_action(
            self.logger, "info", f"Deposit opened: {amount} for {term.months} months",
            account=account, action="deposit", resource=f"deposit:{index}",
            details={"rate": deposit.interest_rate}
        )
        return index, deposit

    def withdraw(self, account: str, now: int, index: int) -> WithdrawalResult:
        """
        Withdraw a deposit, or reinvest it if it was left past its grace window

        Early withdrawals earn the base rate; held at least the full term they
        earn the locked-in rate. Once the holding time reaches the reinvest
        threshold the deposit rolls over in place with interest added.

        Raises:
            NotFoundError: If the slot does not exist or was already withdrawn
        """
        deposits = self.get_deposits(account)
        if index < 0 or index >= len(deposits) or deposits[index].amount == 0:
            raise NotFoundError(
                f"Deposit {index} not found or already withdrawn",
                {"account": account, "deposit_index": index}
            )
        deposit = deposits[index]

        time_held = now - deposit.start_time
        required_hold = self.required_hold_time(deposit)
        if time_held < required_hold:
            rate = self.config.base_rate
        else:
            rate = deposit.interest_rate

        interest = self.accrued_interest(deposit.amount, rate, time_held)
        total = deposit.amount + interest

        if self.is_past_grace(time_held, required_hold):
            deposit.amount = total
            deposit.start_time = now
            self._save_deposits(account, deposits)

            self.event_log.emit(LedgerEventType.REINVESTED, account, now, {
                "new_amount": deposit.amount,
                "term": deposit.term_months,
                "rate": deposit.interest_rate,
                "start_time": deposit.start_time
            })
            log_action(
                self.logger, "info", f"Deposit reinvested: {total}",
                account=account, action="reinvest", resource=f"deposit:{index}",
                details={"interest": interest, "time_held": time_held}
            )
            return WithdrawalResult(total, self.REINVESTED_MESSAGE, interest, True)

        start_time = deposit.start_time
        deposit.amount = 0
        deposit.state = DepositState.WITHDRAWN
        self._save_deposits(account, deposits)

        self.event_log.emit(LedgerEventType.WITHDRAWN, account, now, {
            "amount": total - interest,
            "term": deposit.term_months,
            "interest": interest,
            "total": total,
            "start_time": start_time,
            "end_time": now
        })
        log_action(
            self.logger, "info", f"Deposit withdrawn: {total}",
            account=account, action="withdraw", resource=f"deposit:{index}",
            details={"interest": interest, "rate": rate, "time_held": time_held}
        )
        return WithdrawalResult(total, self.WITHDRAWN_MESSAGE, interest, False)

    def report_start_time(self, account: str, now: int, index: int) -> calendar_engine.CivilDateTime:
        """Local civil date-time at which a deposit started"""
        deposit = self.get_deposit(account, index)
        return self._report(account, now, index, deposit.start_time,
                            LedgerEventType.START_TIME_REPORTED)

    def report_maturity(self, account: str, now: int, index: int) -> calendar_engine.CivilDateTime:
        """Local civil date-time at which a deposit matures"""
        deposit = self.get_deposit(account, index)
        return self._report(account, now, index, self.maturity_time(deposit),
                            LedgerEventType.MATURITY_REPORTED)

    def _report(
        self,
        account: str,
        now: int,
        index: int,
        timestamp: int,
        event_type: LedgerEventType
    ) -> calendar_engine.CivilDateTime:
        local = calendar_engine.to_local(timestamp, self.config.local_offset_seconds)
        civil = calendar_engine.timestamp_to_datetime(local)
        self.event_log.emit(event_type, account, now, {
            "deposit_index": index,
            "year": civil.year,
            "month": civil.month,
            "day": civil.day,
            "hour": civil.hour,
            "minute": civil.minute,
            "second": civil.second
        })
        return civil

    def list_deposits(self, account: str) -> DepositListing:
        deposits = self.get_deposits(account)
        return DepositListing(
            amounts=[d.amount for d in deposits],
            start_times=[d.start_time for d in deposits],
            terms=[d.term_months for d in deposits],
            rates=[d.interest_rate for d in deposits]
        )
