"""
Kakeibo - Source Package

A personal double-entry ledger that reads receipts and card statement
screenshots, proposes categorized journals, and saves them only after a
human has reviewed them.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms → System verifies
2. Every saved journal balances (debits == credits > 0)
3. No silent corrections
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Kakeibo Team"
