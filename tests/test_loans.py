"""
Test suite for the loan lifecycle

Tests borrowing capacity, the loan-to-value cap, single-use collateral,
rate add-ons, repayment and closure, and the withdrawal block while a loan
is outstanding.
"""

import pytest

from savings_ledger.access import StaticIdentity
from savings_ledger.clock import FixedClock
from savings_ledger.config import LedgerConfig
from savings_ledger.engine import LedgerEngine
from savings_ledger.events import LedgerEventType
from savings_ledger.exceptions import (
    BlockedError, ConflictError, LimitError, NotFoundError, ValidationError
)
from savings_ledger.loans import CollateralLock, LoanState
from savings_ledger.storage import InMemoryStorage


T0 = 1704067200  # 2024-01-01T00:00:00Z
MONTH = 30 * 24 * 60 * 60


class LoanTestBase:
    """Engine with one 100M 12-month deposit (rate 25) for the operator"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.config = LedgerConfig(operator_account="operator")
        self.clock = FixedClock(T0)
        self.identity = StaticIdentity("operator")
        self.engine = LedgerEngine(self.identity, InMemoryStorage(), self.config, self.clock)
        self.engine.deposit(100_000_000, 12)


class TestBorrowingCapacity(LoanTestBase):
    """Test capacity checks"""
    
    def test_capacity_for_fresh_deposit(self):
        capacity = self.engine.check_borrowing_capacity(0)
        
        assert capacity.max_loan_amount == 80_000_000
        assert capacity.remaining_months == 12
        assert capacity.options == list(range(1, 13))
        assert "2%" in capacity.rate_description
        
        events = self.engine.event_log.get_events(event_type=LedgerEventType.VALIDITY_CHECKED)
        assert events[0].data["max_loan"] == 80_000_000
        assert events[0].data["options"] == list(range(1, 13))
    
    def test_remaining_months_floor(self):
        self.clock.advance(4 * MONTH + 1)
        capacity = self.engine.check_borrowing_capacity(0)
        assert capacity.remaining_months == 7
        assert capacity.options == [1, 2, 3, 4, 5, 6, 7]
    
    def test_capacity_after_term_end(self):
        self.clock.advance(12 * MONTH)
        with pytest.raises(ValidationError, match="end of its term"):
            self.engine.check_borrowing_capacity(0)
    
    def test_capacity_after_withdrawal(self):
        self.clock.advance(10)
        self.engine.withdraw(0)
        with pytest.raises(ValidationError, match="withdrawn"):
            self.engine.check_borrowing_capacity(0)
    
    def test_capacity_unknown_deposit(self):
        with pytest.raises(NotFoundError):
            self.engine.check_borrowing_capacity(1)


class TestBorrow(LoanTestBase):
    """Test loan origination"""
    
    def test_borrow_at_cap(self):
        self.engine.check_borrowing_capacity(0)
        index, loan = self.engine.borrow(0, 80_000_000, 6)
        
        assert index == 0
        assert loan.principal == 80_000_000
        assert loan.interest_rate == 25 + 30
        assert loan.total_repayment_due == 102_000_000
        assert loan.remaining_balance == 102_000_000
        assert loan.start_time == T0
        assert loan.term_months == 6
        assert loan.state == LoanState.ACTIVE
    
    def test_borrow_above_cap(self):
        self.engine.check_borrowing_capacity(0)
        with pytest.raises(LimitError):
            self.engine.borrow(0, 80_000_001, 6)
        assert self.engine.list_loans().principals == []
        assert self.engine.loans.collateral_lock("operator", 0) == CollateralLock.UNUSED
    
    def test_low_add_on_for_half_cap(self):
        self.engine.check_borrowing_capacity(0)
        _, loan = self.engine.borrow(0, 40_000_000, 6)
        assert loan.interest_rate == 45
        assert loan.total_repayment_due == 49_000_000
    
    def test_duration_must_be_an_option(self):
        self.engine.check_borrowing_capacity(0)
        with pytest.raises(ValidationError, match="not available"):
            self.engine.borrow(0, 10_000_000, 13)
    
    def test_borrow_without_capacity_check(self):
        with pytest.raises(ValidationError, match="not available"):
            self.engine.borrow(0, 10_000_000, 1)
    
    def test_borrow_non_positive_amount(self):
        self.engine.check_borrowing_capacity(0)
        with pytest.raises(ValidationError):
            self.engine.borrow(0, 0, 1)
    
    def test_borrow_against_withdrawn_deposit(self):
        self.clock.advance(10)
        self.engine.withdraw(0)
        with pytest.raises(NotFoundError):
            self.engine.borrow(0, 10_000_000, 1)
    
    def test_borrow_unknown_deposit(self):
        with pytest.raises(NotFoundError):
            self.engine.borrow(4, 10_000_000, 1)
    
    def test_collateral_is_single_use(self):
        self.engine.check_borrowing_capacity(0)
        self.engine.borrow(0, 10_000_000, 1)
        
        with pytest.raises(ConflictError):
            self.engine.borrow(0, 10_000_000, 1)
    
    def test_collateral_stays_locked_after_repayment(self):
        self.engine.check_borrowing_capacity(0)
        _, loan = self.engine.borrow(0, 10_000_000, 1)
        self.engine.repay_loan(0, loan.total_repayment_due)
        
        self.engine.check_borrowing_capacity(0)
        with pytest.raises(ConflictError):
            self.engine.borrow(0, 10_000_000, 1)
        assert self.engine.loans.collateral_lock("operator", 0) == CollateralLock.LOCKED
    
    def test_other_deposit_can_still_back_a_loan(self):
        self.engine.deposit(50_000_000, 6)
        self.engine.check_borrowing_capacity(0)
        self.engine.borrow(0, 10_000_000, 1)
        
        self.engine.check_borrowing_capacity(1)
        index, loan = self.engine.borrow(1, 40_000_000, 3)
        assert index == 1
        assert loan.deposit_index == 1
    
    def test_borrow_emits_record(self):
        self.engine.check_borrowing_capacity(0)
        self.engine.borrow(0, 40_000_000, 6)
        
        events = self.engine.event_log.get_events(event_type=LedgerEventType.LOAN_TAKEN)
        assert events[0].data == {
            "account": "operator",
            "principal": 40_000_000,
            "rate": 45,
            "start_time": T0,
            "duration": 6,
            "total_due": 49_000_000
        }
    
    def test_borrow_open_to_other_accounts(self):
        self.identity.switch("customer")
        with pytest.raises(NotFoundError):
            self.engine.borrow(0, 10_000_000, 1)


class TestRepayLoan(LoanTestBase):
    """Test repayment and closure"""
    
    def setup_method(self):
        super().setup_method()
        self.engine.check_borrowing_capacity(0)
        self.engine.borrow(0, 40_000_000, 6)  # total due 49,000,000
    
    def test_partial_repayment(self):
        loan = self.engine.repay_loan(0, 9_000_000)
        
        assert loan.remaining_balance == 40_000_000
        assert loan.state == LoanState.ACTIVE
        assert self.engine.outstanding_balance() == 40_000_000
        
        events = self.engine.event_log.get_events(event_type=LedgerEventType.LOAN_REPAID)
        assert events[0].data == {"account": "operator", "paid": 9_000_000, "remaining_balance": 40_000_000}
    
    def test_full_repayment_closes_slot(self):
        self.engine.repay_loan(0, 49_000_000)
        
        loan = self.engine.get_loan(0)
        assert loan.state == LoanState.CLOSED
        assert loan.remaining_balance == 0
        listing = self.engine.list_loans()
        assert listing.principals == [0]
        assert listing.durations == [0]
        assert len(self.engine.event_log.get_events(event_type=LedgerEventType.LOAN_CLOSED)) == 1
    
    def test_overpayment_against_balance_rejected(self):
        self.engine.repay_loan(0, 40_000_000)
        with pytest.raises(ValidationError, match="remaining balance"):
            self.engine.repay_loan(0, 9_000_001)
        assert self.engine.get_loan(0).remaining_balance == 9_000_000
    
    def test_repay_closed_loan(self):
        self.engine.repay_loan(0, 49_000_000)
        with pytest.raises(NotFoundError):
            self.engine.repay_loan(0, 1)
    
    def test_repay_unknown_loan(self):
        with pytest.raises(NotFoundError):
            self.engine.repay_loan(1, 1)
    
    def test_repay_non_positive(self):
        with pytest.raises(ValidationError):
            self.engine.repay_loan(0, 0)


class TestWithdrawalBlock(LoanTestBase):
    """Test that an outstanding loan blocks every withdrawal"""
    
    def setup_method(self):
        super().setup_method()
        self.engine.deposit(30_000_000, 2)
        self.engine.check_borrowing_capacity(0)
        self.engine.borrow(0, 10_000_000, 1)
        self.clock.advance(30)
    
    def test_blocked_on_collateral_deposit(self):
        with pytest.raises(BlockedError):
            self.engine.withdraw(0)
    
    def test_blocked_on_unrelated_deposit(self):
        with pytest.raises(BlockedError):
            self.engine.withdraw(1)
        assert self.engine.get_deposit(1).amount == 30_000_000
    
    def test_unblocked_after_repayment(self):
        loan = self.engine.get_loan(0)
        self.engine.repay_loan(0, loan.remaining_balance)
        
        result = self.engine.withdraw(1)
        assert not result.reinvested
        assert self.engine.list_deposits().amounts == [100_000_000, 0]
