"""
Budget Tracker - Source Package

A personal budget tracker: users record income and expense transactions
against calendar dates and view monthly summaries.

DESIGN PRINCIPLES:
1. Every record belongs to exactly one user
2. Money is Decimal, never float
3. Not-found never reveals whether someone else owns the record
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Tracker Team"
