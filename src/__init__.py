"""
Loan Ledger - Source Package

A loan interest-accrual and payment-ledger engine for a personal finance
tracker: money borrowed from or lent to people, interest that accrues
weekly or monthly, and an auditable history of every payment.

DESIGN PRINCIPLES:
1. Stored records and computed balances are kept apart
2. Fail early, fail visibly
3. No silent corrections
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Loan Ledger Team"
