"""
Gescom Kernel - commercial document business rules

Invoices, quotes, delivery notes, supplier orders and credit notes with:
- Ordered, chained tax breakdowns
- Unique sequential document numbers
- Append-only stock ledger with a negative-stock policy
- Atomic saves (number, totals and stock in one transaction)
"""

__version__ = "0.1.0"
