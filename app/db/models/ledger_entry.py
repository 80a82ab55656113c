"""
Ledger Entry Model - Immutable Transaction History

Every committed transfer writes exactly two rows sharing one transfer_id:
a debit on the sender's wallet and a credit on the recipient's wallet.
Both carry the caller's idempotency key unchanged; the (idempotency_key,
entry_type) unique constraint is what rejects the loser of a concurrent
retry race.
"""
import enum
from sqlalchemy import (
    Column,
    Integer,
    Numeric,
    DateTime,
    ForeignKey,
    String,
    Text,
    Enum as SQLEnum,
    UniqueConstraint,
    CheckConstraint,
    Index,
)

from app.db.database import Base
from app.db.models.user import utcnow


class LedgerEntryType(str, enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class LedgerEntry(Base):
    """One side (debit or credit) of a completed transfer"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    transfer_id = Column(String(36), nullable=False, index=True)

    entry_type = Column(
        SQLEnum(
            LedgerEntryType,
            name="ledger_entry_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)  # magnitude; direction is entry_type
    balance_after = Column(Numeric(12, 2), nullable=False)

    related_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    idempotency_key = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("idempotency_key", "entry_type", name="uq_transactions_idempotency_side"),
        UniqueConstraint("transfer_id", "entry_type", name="uq_transactions_transfer_side"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_wallet_created", "wallet_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, wallet_id={self.wallet_id}, "
            f"type={self.entry_type}, amount={self.amount})>"
        )
