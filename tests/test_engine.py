"""
Test suite for the ledger engine

Tests operator-only access, per-transaction clock reads, rollback of failed
operations, post-commit event delivery and running on the SQLite backend.
"""

import threading

import pytest

from savings_ledger.access import StaticIdentity
from savings_ledger.clock import FixedClock
from savings_ledger.config import LedgerConfig
from savings_ledger.engine import LedgerEngine
from savings_ledger.events import EventDispatcher, LedgerEventType
from savings_ledger.exceptions import AccessDeniedError, LedgerError, ValidationError
from savings_ledger.storage import InMemoryStorage, SQLiteStorage


T0 = 1704067200


class TestAccessControl:
    """Test operator-only operations"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.identity = StaticIdentity("operator")
        self.clock = FixedClock(T0)
        self.engine = LedgerEngine(
            self.identity, InMemoryStorage(), LedgerConfig(operator_account="operator"), self.clock
        )
        self.engine.deposit(100_000_000, 12)
    
    @pytest.mark.parametrize("operation,args", [
        ("deposit", (100_000_000, 6)),
        ("withdraw", (0,)),
        ("check_borrowing_capacity", (0,)),
        ("repay_loan", (0, 1)),
    ])
    def test_restricted_operations_refuse_other_accounts(self, operation, args):
        self.identity.switch("customer")
        with pytest.raises(AccessDeniedError):
            getattr(self.engine, operation)(*args)
    
    def test_refusal_changes_nothing(self):
        self.identity.switch("customer")
        with pytest.raises(AccessDeniedError):
            self.engine.deposit(100_000_000, 6)
        
        self.identity.switch("operator")
        assert self.engine.list_deposits().amounts == [100_000_000]
        assert self.engine.event_log.count_events() == 1
    
    def test_access_denied_is_a_ledger_error(self):
        assert issubclass(AccessDeniedError, LedgerError)
        assert issubclass(AccessDeniedError, ValueError)
    
    def test_accounts_are_isolated(self):
        self.identity.switch("customer")
        listing = self.engine.list_deposits()
        assert listing.amounts == []
        assert self.engine.list_loans().principals == []


class CountingClock(FixedClock):
    """Fixed clock that counts reads"""
    
    def __init__(self, now):
        super().__init__(now)
        self.reads = 0
    
    def __call__(self):
        self.reads += 1
        return super().__call__()


class TestTransactions:
    """Test transactional behaviour"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.clock = CountingClock(T0)
        self.storage = InMemoryStorage()
        self.engine = LedgerEngine(
            StaticIdentity("operator"), self.storage,
            LedgerConfig(operator_account="operator"), self.clock
        )
    
    def test_clock_read_once_per_operation(self):
        self.engine.deposit(100_000_000, 12)
        assert self.clock.reads == 1
        self.engine.check_borrowing_capacity(0)
        assert self.clock.reads == 2
    
    def test_failed_operation_leaves_no_writes(self):
        self.engine.deposit(100_000_000, 12)
        before = self.storage.get_all_data()
        
        with pytest.raises(ValidationError):
            self.engine.borrow(0, 10_000_000, 1)  # no capacity check yet
        
        assert self.storage.get_all_data() == before
        assert not self.storage.in_transaction
    
    def test_unexpected_error_rolls_back(self):
        self.engine.deposit(100_000_000, 12)
        original = self.engine.loans._lock_collateral
        
        def failing_lock(account, deposit_index):
            original(account, deposit_index)
            raise RuntimeError("storage failure")
        
        self.engine.loans._lock_collateral = failing_lock
        self.engine.check_borrowing_capacity(0)
        before = self.storage.get_all_data()
        
        with pytest.raises(RuntimeError):
            self.engine.borrow(0, 10_000_000, 1)
        
        assert self.storage.get_all_data() == before
        assert self.engine.list_loans().principals == []
    
    def test_event_chain_stays_valid(self):
        self.engine.deposit(100_000_000, 12)
        self.engine.check_borrowing_capacity(0)
        with pytest.raises(ValidationError):
            self.engine.borrow(0, 10_000_000, 24)
        self.engine.borrow(0, 10_000_000, 2)
        
        integrity = self.engine.event_log.verify_integrity()
        assert integrity['valid']
        assert integrity['total_events'] == 3


class TestEventDelivery:
    """Test delivery of committed events to observers"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.dispatcher = EventDispatcher()
        self.received = []
        self.dispatcher.subscribe_all(self.received.append)
        self.engine = LedgerEngine(
            StaticIdentity("operator"), InMemoryStorage(),
            LedgerConfig(operator_account="operator"), FixedClock(T0), self.dispatcher
        )
    
    def test_committed_events_delivered(self):
        self.engine.deposit(100_000_000, 12)
        assert [e.event_type for e in self.received] == [LedgerEventType.DEPOSITED]
    
    def test_failed_operation_delivers_nothing(self):
        with pytest.raises(ValidationError):
            self.engine.deposit(1, 12)
        assert self.received == []
    
    def test_reads_deliver_nothing(self):
        self.engine.list_deposits()
        assert self.received == []
    
    def test_failing_handler_does_not_break_ledger(self):
        def broken_handler(event):
            raise RuntimeError("observer down")
        
        self.dispatcher.subscribe(LedgerEventType.DEPOSITED, broken_handler)
        index, _ = self.engine.deposit(100_000_000, 12)
        
        assert index == 0
        assert self.engine.list_deposits().amounts == [100_000_000]
        assert len(self.received) == 1
    
    def test_disabled_event_log(self):
        engine = LedgerEngine(
            StaticIdentity("operator"), InMemoryStorage(),
            LedgerConfig(operator_account="operator", enable_event_log=False),
            FixedClock(T0), self.dispatcher
        )
        engine.deposit(100_000_000, 12)
        assert engine.event_log.count_events() == 0
        assert self.received == []


class TestConcurrentDelivery:
    """Test event delivery while another thread's observers are still running"""

    def setup_method(self):
        """Set up test fixtures"""
        self.dispatcher = EventDispatcher()
        self.delivered = []
        self.observer_entered = threading.Event()
        self.release_observer = threading.Event()
        self.dispatcher.subscribe(LedgerEventType.DEPOSITED, self._slow_observer)
        self.engine = LedgerEngine(
            StaticIdentity("operator"), InMemoryStorage(),
            LedgerConfig(operator_account="operator"), FixedClock(T0), self.dispatcher
        )

    def _slow_observer(self, event):
        if event.data["term"] == 6:
            self.observer_entered.set()
            self.release_observer.wait(timeout=5)
        self.delivered.append(event.data["term"])

    def _deposit_in_background(self):
        worker = threading.Thread(target=self.engine.deposit, args=(20_000_000, 6))
        worker.start()
        assert self.observer_entered.wait(timeout=5)
        return worker

    def test_rejected_operation_keeps_committed_events(self):
        worker = self._deposit_in_background()

        with pytest.raises(ValidationError):
            self.engine.deposit(20_000_000, 3)

        self.release_observer.set()
        worker.join(timeout=5)
        assert self.engine.list_deposits().amounts == [20_000_000]
        assert self.delivered == [6]

    def test_rolled_back_events_never_delivered(self):
        original = self.engine.deposits.open_deposit

        def failing_open(account, now, amount, term_months):
            result = original(account, now, amount, term_months)
            if term_months == 9:
                raise RuntimeError("storage failure")
            return result

        self.engine.deposits.open_deposit = failing_open
        worker = self._deposit_in_background()

        with pytest.raises(RuntimeError):
            self.engine.deposit(30_000_000, 9)
        self.engine.deposit(40_000_000, 12)

        self.release_observer.set()
        worker.join(timeout=5)
        assert self.engine.list_deposits().amounts == [20_000_000, 40_000_000]
        assert sorted(self.delivered) == [6, 12]


class TestSQLiteBackend:
    """Test a full loan cycle on SQLite"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.storage = SQLiteStorage(":memory:")
        self.clock = FixedClock(T0)
        self.engine = LedgerEngine(
            StaticIdentity("operator"), self.storage,
            LedgerConfig(operator_account="operator"), self.clock
        )
    
    def teardown_method(self):
        self.engine.close()
    
    def test_loan_cycle(self):
        self.engine.deposit(100_000_000, 12)
        self.engine.check_borrowing_capacity(0)
        _, loan = self.engine.borrow(0, 40_000_000, 6)
        self.engine.repay_loan(0, loan.total_repayment_due)
        self.clock.advance(60)
        
        result = self.engine.withdraw(0)
        assert result.total == 100_000_000 + 100_000_000 * 5 * 60 // 360_000
        assert self.engine.list_deposits().amounts == [0]
        assert self.engine.event_log.verify_integrity()['valid']
    
    def test_rollback_on_sqlite(self):
        self.engine.deposit(100_000_000, 12)
        with pytest.raises(ValidationError):
            self.engine.borrow(0, 10_000_000, 1)
        assert self.engine.list_loans().principals == []
        assert self.engine.event_log.count_events() == 1
