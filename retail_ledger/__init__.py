"""
Retail Ledger

Transactional core of a retail bank: funds transfers between accounts,
stock trading against a shared share pool with average cost basis
accounting, and a two-asset wealth allocation. All money math uses Decimal.
"""

__version__ = "1.0.0"
