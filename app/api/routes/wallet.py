"""
Wallet API Routes
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_user
from app.core.auth import AuthenticatedUser
from app.core.exceptions import ValidationException
from app.core.validation import email_validator, notes_validator
from app.db.database import get_db
from app.domain.services.wallet_service import WalletService

router = APIRouter()

IDEMPOTENCY_KEY_MAX_LENGTH = 255


class WalletResponse(BaseModel):
    id: int
    user_id: int
    balance: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("balance")
    def serialize_balance(self, v: Decimal) -> float:
        return float(v)


class LedgerEntryResponse(BaseModel):
    id: int
    wallet_id: int
    transfer_id: str
    type: str
    amount: Decimal
    balance_after: Decimal
    related_user_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_serializer("amount", "balance_after")
    def serialize_money(self, v: Decimal) -> float:
        return float(v)

    @classmethod
    def from_entry(cls, entry) -> "LedgerEntryResponse":
        return cls(
            id=entry.id,
            wallet_id=entry.wallet_id,
            transfer_id=entry.transfer_id,
            type=entry.entry_type.value,
            amount=entry.amount,
            balance_after=entry.balance_after,
            related_user_id=entry.related_user_id,
            notes=entry.notes,
            created_at=entry.created_at,
        )


class WalletWithHistoryResponse(BaseModel):
    wallet: WalletResponse
    transactions: List[LedgerEntryResponse]


class TransferRequest(BaseModel):
    recipient: str
    # sign and scale are checked by the transfer engine so its validation order holds
    amount: Decimal
    notes: Optional[str] = ""

    @field_validator("recipient")
    @classmethod
    def validate_recipient(cls, v: str) -> str:
        return email_validator(v)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> str:
        return notes_validator(v)


class TransferResponse(BaseModel):
    message: str = "transfer successful"
    transfer_id: str
    amount: Decimal
    replayed: bool

    @field_serializer("amount")
    def serialize_amount(self, v: Decimal) -> float:
        return float(v)


class MeResponse(BaseModel):
    message: str
    user_id: int


@router.get(
    "/wallet",
    response_model=WalletWithHistoryResponse,
    summary="Get my wallet",
    description="Returns the caller's wallet and up to 50 most recent transactions, newest first.",
    responses={401: {"description": "Missing, invalid or expired credential"}},
)
async def get_wallet(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = WalletService(db)
    wallet, entries = await service.get_wallet(current_user.user_id)
    return WalletWithHistoryResponse(
        wallet=WalletResponse.model_validate(wallet),
        transactions=[LedgerEntryResponse.from_entry(e) for e in entries],
    )


@router.post(
    "/wallet/transfer",
    response_model=TransferResponse,
    summary="Transfer funds",
    description=(
        "Moves funds to another user by email. Send an Idempotency-Key header to make "
        "retries safe: a repeated key returns success without moving money again."
    ),
    responses={
        400: {"description": "Invalid amount, insufficient balance, or self-transfer"},
        401: {"description": "Missing, invalid or expired credential"},
        404: {"description": "Recipient not found"},
    },
)
async def transfer(
    body: TransferRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if idempotency_key is not None:
        idempotency_key = idempotency_key.strip() or None
    if idempotency_key and len(idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise ValidationException(
            f"Idempotency-Key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters",
            field="Idempotency-Key",
        )

    service = WalletService(db)
    result = await service.transfer(
        sender_id=current_user.user_id,
        recipient_email=body.recipient,
        amount=body.amount,
        notes=body.notes or "",
        idempotency_key=idempotency_key,
    )
    return TransferResponse(
        transfer_id=result.transfer_id,
        amount=result.amount,
        replayed=result.replayed,
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Who am I",
    responses={401: {"description": "Missing, invalid or expired credential"}},
)
async def me(current_user: AuthenticatedUser = Depends(get_current_user)):
    return MeResponse(
        message=f"Hello {current_user.email}, welcome back",
        user_id=current_user.user_id,
    )
