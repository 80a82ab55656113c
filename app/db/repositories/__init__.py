"""
Repositories - the identity, wallet and ledger stores.

Repositories never commit; the service that owns the unit of work does.
"""
from app.db.repositories.user_repository import UserRepository
from app.db.repositories.wallet_repository import WalletRepository
from app.db.repositories.transaction_repository import TransactionRepository

__all__ = ["UserRepository", "WalletRepository", "TransactionRepository"]
