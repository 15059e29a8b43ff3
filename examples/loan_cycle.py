#!/usr/bin/env python3
"""
Example: A deposit-backed loan from opening to withdrawal

Opens a term deposit, borrows against it, repays the loan and withdraws
the deposit, printing the local-time reports and the event log on the way.
"""

from savings_ledger.access import StaticIdentity
from savings_ledger.calendar_engine import timestamp_from_datetime
from savings_ledger.clock import FixedClock
from savings_ledger.config import get_config
from savings_ledger.engine import LedgerEngine
from savings_ledger.events import EventDispatcher
from savings_ledger.logging_config import setup_logging


def main():
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Savings Ledger - loan cycle example")
    print("=" * 60)

    clock = FixedClock(timestamp_from_datetime(2024, 1, 1, 2, 0, 0))
    dispatcher = EventDispatcher()
    dispatcher.subscribe_all(lambda event: print(f"   event: {event.event_type.value} {event.data}"))

    engine = LedgerEngine(StaticIdentity(config.operator_account), config=config,
                          clock=clock, dispatcher=dispatcher)

    print("\n1. Open a 12 month deposit")
    index, deposit = engine.deposit(250_000_000, 12)
    print(f"   deposit #{index}: {deposit.amount} at {deposit.interest_rate}%")
    print(f"   starts  {engine.report_start_time(index).isoformat()} (local)")
    print(f"   matures {engine.report_maturity(index).isoformat()} (local)")

    print("\n2. Check borrowing capacity and borrow")
    capacity = engine.check_borrowing_capacity(index)
    print(f"   max loan {capacity.max_loan_amount}, options {capacity.options}")
    loan_index, loan = engine.borrow(index, capacity.max_loan_amount // 2, 3)
    print(f"   loan #{loan_index}: {loan.principal} at {loan.interest_rate}%, due {loan.total_repayment_due}")

    print("\n3. Repay in two instalments")
    clock.advance(3600)
    engine.repay_loan(loan_index, loan.total_repayment_due // 2)
    remaining = engine.get_loan(loan_index).remaining_balance
    engine.repay_loan(loan_index, remaining)

    print("\n4. Withdraw the deposit (rolls over once past its grace window)")
    clock.advance(3600)
    result = engine.withdraw(index)
    print(f"   {result.message}: {result.total} (interest {result.interest})")

    integrity = engine.event_log.verify_integrity()
    print(f"\nEvent log: {integrity['total_events']} events, valid={integrity['valid']}")
    engine.close()


if __name__ == "__main__":
    main()
