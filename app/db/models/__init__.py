"""
Database Models
"""
from app.db.models.user import User
from app.db.models.wallet import Wallet
from app.db.models.ledger_entry import LedgerEntry, LedgerEntryType

__all__ = [
    "User",
    "Wallet",
    "LedgerEntry",
    "LedgerEntryType",
]
