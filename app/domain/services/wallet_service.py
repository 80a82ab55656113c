"""
Wallet Service - wallet view and the transfer engine

Transfer protocol (first failing check wins):
1. Idempotency check (only when a key is supplied): a committed debit with
   the same key means the transfer already happened; report success.
2. Amount validation
3. Sender resolution (authenticated upstream; absence is a broken invariant)
4. Recipient resolution by normalized email
5. Self-transfer check on resolved ids
Then, inside one unit of work:
6. Lock both wallets (SELECT ... FOR UPDATE) in ascending wallet id order
7. Balance check
8. Apply deltas
9. Append one debit + one credit ledger entry
10. Commit; any failure rolls the whole unit back
"""
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppException,
    InsufficientBalanceError,
    InternalServiceError,
    InvalidAmountError,
    RecipientNotFoundError,
    SelfTransferError,
)
from app.core.logging import get_logger, log_async_operation, mask_email
from app.db.models.ledger_entry import LedgerEntry, LedgerEntryType
from app.db.models.wallet import Wallet
from app.db.repositories import TransactionRepository, UserRepository, WalletRepository

logger = get_logger(__name__)

AMOUNT_QUANTUM = Decimal("0.01")
# largest value a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a successful (or replayed) transfer"""
    transfer_id: str
    amount: Decimal
    replayed: bool = False
    sender_balance: Optional[Decimal] = None


def parse_amount(amount: Any) -> Decimal:
    """
    Convert an incoming amount to a 2-decimal Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    expansion. Raises InvalidAmountError for non-numeric, non-finite,
    non-positive values, values with more than 2 decimal places, or values
    too large for the balance columns.
    """
    if isinstance(amount, bool):
        raise InvalidAmountError(amount, "amount must be a number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(amount, "amount must be a number")

    if not value.is_finite():
        raise InvalidAmountError(amount, "amount must be a number")
    if value <= 0:
        raise InvalidAmountError(amount)
    if value > MAX_AMOUNT:
        raise InvalidAmountError(amount, f"amount must not exceed {MAX_AMOUNT}")
    if value.as_tuple().exponent < -2:
        raise InvalidAmountError(amount, "amount must have at most 2 decimal places")
    return value.quantize(AMOUNT_QUANTUM)


class WalletService:
    """Service for wallet reads and wallet-to-wallet transfers"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserRepository(db)
        self.wallets = WalletRepository(db)
        self.ledger = TransactionRepository(db)

    async def get_wallet(
        self, user_id: int, limit: int | None = None
    ) -> tuple[Wallet, list[LedgerEntry]]:
        """Wallet plus its most recent ledger entries, newest first"""
        if limit is None:
            limit = settings.WALLET_HISTORY_LIMIT
        try:
            wallet = await self.wallets.get_by_user_id(user_id)
            if wallet is None:
                logger.error("Wallet missing for user", extra_data={"user_id": user_id})
                raise InternalServiceError("loading wallet")
            entries = await self.ledger.list_for_wallet(wallet.id, limit)
        except SQLAlchemyError as e:
            raise InternalServiceError("loading wallet") from e
        return wallet, entries

    async def _find_replay(self, idempotency_key: str) -> Optional[TransferResult]:
        """TransferResult for an already-committed transfer under this key, if any"""
        try:
            existing = await self.ledger.get_by_idempotency_key(idempotency_key)
        except SQLAlchemyError as e:
            raise InternalServiceError("checking idempotency") from e
        if existing is None:
            return None
        return TransferResult(
            transfer_id=existing.transfer_id,
            amount=existing.amount,
            replayed=True,
        )

    @log_async_operation("wallet transfer")
    async def transfer(
        self,
        sender_id: int,
        recipient_email: str,
        amount: Any,
        notes: str = "",
        idempotency_key: Optional[str] = None,
    ) -> TransferResult:
        """
        Move `amount` from the sender's wallet to the recipient's wallet.

        Safe to retry verbatim with the same idempotency key: the second call
        reports success without touching any balance.

        Raises:
            InvalidAmountError, RecipientNotFoundError, SelfTransferError,
            InsufficientBalanceError: terminal domain errors
            InternalServiceError: storage failure; retry with the same key
        """
        if idempotency_key:
            replay = await self._find_replay(idempotency_key)
            if replay is not None:
                logger.info(
                    "Idempotent replay, transfer already committed",
                    extra_data={"sender_id": sender_id, "transfer_id": replay.transfer_id},
                )
                return replay

        value = parse_amount(amount)

        try:
            sender = await self.users.get_by_id(sender_id)
            recipient = await self.users.get_by_email(recipient_email or "")
        except SQLAlchemyError as e:
            raise InternalServiceError("resolving transfer parties") from e

        if sender is None:
            logger.error(
                "Authenticated sender does not exist",
                extra_data={"sender_id": sender_id},
            )
            raise InternalServiceError("resolving sender")
        if recipient is None:
            raise RecipientNotFoundError()
        if sender.id == recipient.id:
            raise SelfTransferError()

        # plain ints: ORM objects are expired by a rollback and must not be touched after one
        sender_user_id = sender.id
        recipient_user_id = recipient.id

        try:
            result = await self._execute_transfer(
                sender_user_id=sender_user_id,
                recipient_user_id=recipient_user_id,
                amount=value,
                notes=notes or None,
                idempotency_key=idempotency_key or str(uuid.uuid4()),
            )
        except IntegrityError as e:
            await self.db.rollback()
            if idempotency_key:
                replay = await self._find_replay(idempotency_key)
                if replay is not None:
                    # lost a race against a concurrent request with the same key
                    logger.info(
                        "Concurrent duplicate rejected by ledger constraint, treating as replay",
                        extra_data={
                            "sender_id": sender_user_id,
                            "transfer_id": replay.transfer_id,
                        },
                    )
                    return replay
            raise InternalServiceError("committing transfer") from e
        except AppException:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise InternalServiceError("executing transfer") from e

        logger.info(
            "Transfer committed",
            extra_data={
                "transfer_id": result.transfer_id,
                "sender_id": sender_user_id,
                "recipient_id": recipient_user_id,
                "recipient": mask_email(recipient_email),
                "amount": str(value),
            },
        )
        return result

    async def _execute_transfer(
        self,
        sender_user_id: int,
        recipient_user_id: int,
        amount: Decimal,
        notes: Optional[str],
        idempotency_key: str,
    ) -> TransferResult:
        """Steps 6-10: the locked unit of work. Caller handles rollback."""
        wallet_ids = await self.wallets.get_ids_for_users(
            [sender_user_id, recipient_user_id]
        )
        sender_wallet_id = wallet_ids.get(sender_user_id)
        recipient_wallet_id = wallet_ids.get(recipient_user_id)
        if sender_wallet_id is None or recipient_wallet_id is None:
            logger.error(
                "User without wallet",
                extra_data={
                    "sender_id": sender_user_id,
                    "recipient_id": recipient_user_id,
                },
            )
            raise InternalServiceError("resolving wallets")

        locked = await self.wallets.lock_many([sender_wallet_id, recipient_wallet_id])
        sender_wallet = locked.get(sender_wallet_id)
        recipient_wallet = locked.get(recipient_wallet_id)
        if sender_wallet is None or recipient_wallet is None:
            raise InternalServiceError("locking wallets")

        if sender_wallet.balance < amount:
            raise InsufficientBalanceError(sender_wallet.balance, amount)

        new_sender_balance = sender_wallet.balance - amount
        new_recipient_balance = recipient_wallet.balance + amount
        sender_wallet.balance = new_sender_balance
        recipient_wallet.balance = new_recipient_balance

        transfer_id = str(uuid.uuid4())
        self.ledger.add(LedgerEntry(
            wallet_id=sender_wallet_id,
            transfer_id=transfer_id,
            entry_type=LedgerEntryType.DEBIT,
            amount=amount,
            balance_after=new_sender_balance,
            related_user_id=recipient_user_id,
            notes=notes,
            idempotency_key=idempotency_key,
        ))
        self.ledger.add(LedgerEntry(
            wallet_id=recipient_wallet_id,
            transfer_id=transfer_id,
            entry_type=LedgerEntryType.CREDIT,
            amount=amount,
            balance_after=new_recipient_balance,
            related_user_id=sender_user_id,
            notes=notes,
            idempotency_key=idempotency_key,
        ))

        await self.db.flush()
        await self.db.commit()

        return TransferResult(
            transfer_id=transfer_id,
            amount=amount,
            replayed=False,
            sender_balance=new_sender_balance,
        )
