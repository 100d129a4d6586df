"""Cashbox ledger package: movements, balance, and credit expenses."""

from farmledger.ledger.accessor import LedgerAccessor
from farmledger.ledger.credit import CreditExpenseService

__all__ = ["CreditExpenseService", "LedgerAccessor"]
