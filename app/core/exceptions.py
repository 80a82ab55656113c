"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.
Every exception carries a stable machine-readable ErrorCode plus a human message.
"""
from decimal import Decimal
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    RATE_LIMITED = "ERR_1006"

    # Auth errors (2xxx)
    EMAIL_EXISTS = "ERR_2001"
    PASSWORD_MISMATCH = "ERR_2002"
    WEAK_PASSWORD = "ERR_2003"
    INVALID_CREDENTIALS = "ERR_2004"
    INVALID_TOKEN = "ERR_2005"
    SESSION_EXPIRED = "ERR_2006"

    # Transfer errors (4xxx)
    INSUFFICIENT_BALANCE = "ERR_4001"
    RECIPIENT_NOT_FOUND = "ERR_4002"
    INVALID_AMOUNT = "ERR_4003"
    SELF_TRANSFER = "ERR_4004"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    @property
    def kind(self) -> str:
        """Stable machine-readable kind (the error code value)"""
        return self.error_code.value

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class InternalServiceError(AppException):
    """
    Infrastructure failure (storage unreachable, lock timeout, broken invariant).

    The caller only sees a generic message. The underlying cause stays on
    __cause__ for operator logs.
    """

    def __init__(self, operation: str):
        super().__init__(
            message=f"Internal error while {operation}",
            error_code=ErrorCode.INTERNAL_ERROR,
            status_code=500,
        )
        self.operation = operation


# ============================================================================
# Registration / login
# ============================================================================


class AuthException(AppException):
    """Base exception for registration and authentication errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 400,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )


class EmailExistsError(AuthException):
    """Raised when registering an email that is already taken"""

    def __init__(self):
        super().__init__(
            message="email already exists",
            error_code=ErrorCode.EMAIL_EXISTS,
            status_code=409,
        )


class PasswordMismatchError(AuthException):
    """Raised when password and confirmation differ"""

    def __init__(self):
        super().__init__(
            message="passwords do not match",
            error_code=ErrorCode.PASSWORD_MISMATCH,
        )


class WeakPasswordError(AuthException):
    """Raised when password is shorter than the minimum length"""

    def __init__(self, min_length: int):
        super().__init__(
            message=f"password must be at least {min_length} characters",
            error_code=ErrorCode.WEAK_PASSWORD,
            details={"min_length": min_length},
        )


class InvalidCredentialsError(AuthException):
    """Raised on unknown email or wrong password (deliberately indistinguishable)"""

    def __init__(self):
        super().__init__(
            message="invalid email or password",
            error_code=ErrorCode.INVALID_CREDENTIALS,
            status_code=401,
        )


class InvalidTokenError(AuthException):
    """Raised when the bearer credential is missing, malformed, forged or expired"""

    def __init__(self, message: str = "invalid or expired token"):
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_TOKEN,
            status_code=401,
        )


class SessionExpiredError(AuthException):
    """Raised when the session record is gone even though the token is valid"""

    def __init__(self):
        super().__init__(
            message="session expired due to inactivity",
            error_code=ErrorCode.SESSION_EXPIRED,
            status_code=401,
        )


# ============================================================================
# Transfers
# ============================================================================


class TransferException(AppException):
    """Base exception for transfer errors. All are terminal, never retried."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 400,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )


class InvalidAmountError(TransferException):
    """Raised when amount is not a strictly positive value with at most 2 decimals"""

    def __init__(self, amount: Any = None, reason: str = "amount must be greater than 0"):
        super().__init__(
            message=reason,
            error_code=ErrorCode.INVALID_AMOUNT,
            details={"amount": str(amount)} if amount is not None else None,
        )


class RecipientNotFoundError(TransferException):
    """Raised when the recipient email does not resolve to a user"""

    def __init__(self):
        super().__init__(
            message="recipient not found",
            error_code=ErrorCode.RECIPIENT_NOT_FOUND,
            status_code=404,
        )


class SelfTransferError(TransferException):
    """Raised when sender and recipient resolve to the same user"""

    def __init__(self):
        super().__init__(
            message="cannot transfer to yourself",
            error_code=ErrorCode.SELF_TRANSFER,
        )


class InsufficientBalanceError(TransferException):
    """Raised when the sender's locked balance is below the transfer amount"""

    def __init__(self, current_balance: Decimal, required_amount: Decimal):
        super().__init__(
            message="insufficient balance",
            error_code=ErrorCode.INSUFFICIENT_BALANCE,
            details={
                "current_balance": str(current_balance),
                "required_amount": str(required_amount),
            },
        )
