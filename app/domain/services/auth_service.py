"""
Auth Service - registration and login
"""
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    BCRYPT_MAX_PASSWORD_BYTES,
    create_access_token,
    create_session,
    hash_password,
    verify_password,
)
from app.core.config import settings
from app.core.exceptions import (
    EmailExistsError,
    InternalServiceError,
    InvalidCredentialsError,
    PasswordMismatchError,
    ValidationException,
    WeakPasswordError,
)
from app.core.logging import get_logger, mask_email
from app.db.models.user import User
from app.db.repositories import UserRepository, WalletRepository

logger = get_logger(__name__)


class AuthService:
    """Creates identities (user + seeded wallet) and opens sessions"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserRepository(db)
        self.wallets = WalletRepository(db)

    async def register(self, email: str, password: str, confirm_password: str) -> User:
        """
        Register a user and seed their wallet in one unit of work.

        A user without a wallet is never observable: both rows are flushed
        and committed together, or neither is.
        """
        if password != confirm_password:
            raise PasswordMismatchError()
        if len(password) < settings.PASSWORD_MIN_LENGTH:
            raise WeakPasswordError(settings.PASSWORD_MIN_LENGTH)
        if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValidationException(
                f"password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes",
                field="password",
            )

        try:
            existing = await self.users.get_by_email(email)
        except SQLAlchemyError as e:
            raise InternalServiceError("checking email") from e
        if existing is not None:
            raise EmailExistsError()

        password_hash = hash_password(password)

        try:
            user = await self.users.add(email, password_hash)
            await self.wallets.add(user.id, settings.INITIAL_WALLET_BALANCE)
            await self.db.commit()
        except IntegrityError:
            # concurrent registration with the same email won the unique index
            await self.db.rollback()
            logger.info(
                "IntegrityError on register, email taken concurrently",
                extra_data={"email": mask_email(email)},
            )
            raise EmailExistsError()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise InternalServiceError("creating user") from e

        logger.info(
            "User registered",
            extra_data={"user_id": user.id, "email": mask_email(user.email)},
        )
        return user

    async def login(self, email: str, password: str) -> tuple[str, User]:
        """Check credentials, issue a JWT and open its session record"""
        try:
            user = await self.users.get_by_email(email)
        except SQLAlchemyError as e:
            raise InternalServiceError("finding user") from e

        if user is None or not verify_password(password, user.password_hash):
            logger.info("Login rejected", extra_data={"email": mask_email(email)})
            raise InvalidCredentialsError()

        token = create_access_token(user.id, user.email)
        try:
            await create_session(token, user.id)
        except RedisError as e:
            raise InternalServiceError("creating session") from e
        return token, user
