"""
Auth API Routes - register, login, logout
"""
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_bearer_token, get_current_user
from app.core.auth import AuthenticatedUser, revoke_session
from app.core.exceptions import InternalServiceError
from app.core.logging import get_logger
from app.core.validation import email_validator
from app.db.database import get_db
from app.domain.services.auth_service import AuthService

logger = get_logger(__name__)

router = APIRouter()


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str = Field(min_length=1)
    confirm_password: str = Field(alias="confirmPassword", min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return email_validator(v)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return email_validator(v)


class UserSummary(BaseModel):
    id: int
    email: str

    model_config = ConfigDict(from_attributes=True)


class RegisterResponse(BaseModel):
    message: str = "registration successful"
    user: UserSummary


class LoginResponse(BaseModel):
    token: str
    user: UserSummary


class MessageResponse(BaseModel):
    message: str


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="Creates the user and a wallet seeded with the starting balance, atomically.",
    responses={
        400: {"description": "Passwords do not match, password too short, or invalid body"},
        409: {"description": "Email already exists"},
    },
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    service = AuthService(db)
    user = await service.register(body.email, body.password, body.confirm_password)
    return RegisterResponse(user=UserSummary.model_validate(user))


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Log in",
    description="Issues a bearer token and opens a sliding session for it.",
    responses={401: {"description": "Invalid email or password"}},
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    service = AuthService(db)
    token, user = await service.login(body.email, body.password)
    return LoginResponse(token=token, user=UserSummary.model_validate(user))


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Log out",
    description="Deletes the session record; the token stops working immediately.",
    responses={401: {"description": "Missing, invalid or expired credential"}},
)
async def logout(
    current_user: AuthenticatedUser = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
):
    try:
        await revoke_session(token)
    except RedisError as e:
        raise InternalServiceError("revoking session") from e
    logger.info("User logged out", extra_data={"user_id": current_user.user_id})
    return MessageResponse(message="logout successful")
