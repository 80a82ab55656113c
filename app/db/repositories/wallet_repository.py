"""
Wallet store
"""
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.wallet import Wallet


class WalletRepository:
    """Read/write access to wallets, including row-level locking"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_user_id(self, user_id: int) -> Optional[Wallet]:
        """Get a user's wallet without locking it"""
        result = await self.db.execute(
            select(Wallet).where(
                Wallet.user_id == user_id, Wallet.deleted_at.is_(None)
            )
        )
        return result.scalar_one_or_none()

    async def get_ids_for_users(self, user_ids: Iterable[int]) -> dict[int, int]:
        """Map user_id -> wallet_id without taking any lock"""
        result = await self.db.execute(
            select(Wallet.user_id, Wallet.id).where(
                Wallet.user_id.in_(list(user_ids)),
                Wallet.deleted_at.is_(None),
            )
        )
        return {user_id: wallet_id for user_id, wallet_id in result.all()}

    async def lock(self, wallet_id: int) -> Optional[Wallet]:
        """SELECT ... FOR UPDATE on one wallet row.

        populate_existing makes sure the balance comes from the locked read,
        not from a stale copy already in the identity map.
        """
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.id == wallet_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock_many(self, wallet_ids: Iterable[int]) -> dict[int, Wallet]:
        """
        Lock several wallets, always in ascending id order.

        Every caller acquires row locks in the same global order, so two
        transfers between the same pair of wallets (in either direction)
        cannot deadlock each other.
        """
        locked: dict[int, Wallet] = {}
        for wallet_id in sorted(set(wallet_ids)):
            wallet = await self.lock(wallet_id)
            if wallet is not None:
                locked[wallet_id] = wallet
        return locked

    async def add(self, user_id: int, balance: Decimal) -> Wallet:
        """Stage a new wallet and flush (no commit)"""
        wallet = Wallet(user_id=user_id, balance=balance)
        self.db.add(wallet)
        await self.db.flush()
        return wallet
