"""
Farm Ledger - Source Package

The cashbox ledger and livestock rule engine behind a small-farm
management app.

DESIGN PRINCIPLES:
1. Balances and statuses are derived, never stored
2. Validate before every write, fail with a stable code
3. A rejected write leaves no partial state
4. Every change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Farm Ledger Team"
