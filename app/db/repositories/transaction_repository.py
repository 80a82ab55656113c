"""
Ledger store - append-only
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.ledger_entry import LedgerEntry, LedgerEntryType


class TransactionRepository:
    """Append and read ledger entries. Entries are never updated."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[LedgerEntry]:
        """Debit side of the transfer committed under this key, if any.

        Soft-deleted rows still count: the unique constraint covers them too.
        """
        result = await self.db.execute(
            select(LedgerEntry).where(
                LedgerEntry.idempotency_key == idempotency_key,
                LedgerEntry.entry_type == LedgerEntryType.DEBIT,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_wallet(self, wallet_id: int, limit: int = 50) -> list[LedgerEntry]:
        """Most recent entries for a wallet, newest first"""
        query = (
            select(LedgerEntry)
            .where(
                LedgerEntry.wallet_id == wallet_id,
                LedgerEntry.deleted_at.is_(None),
            )
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        )
        if limit > 0:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def add(self, entry: LedgerEntry) -> LedgerEntry:
        """Stage an entry; it is written on the caller's flush/commit"""
        self.db.add(entry)
        return entry
