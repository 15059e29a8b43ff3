"""
Savings Ledger

Term deposits with tiered interest, automatic reinvestment and
deposit-backed loans, plus an integer proleptic-Gregorian calendar engine
for reporting dates in local civil time.
"""

__version__ = "1.0.0"
