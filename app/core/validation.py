"""
Input Validation Utilities

Provides validation for user inputs:
- Email validation and normalization
- Free-text sanitization (transfer notes)
"""
import re


class ValidationPatterns:
    """Regex patterns for validation"""

    # Pragmatic address check: one @, no whitespace, a dot in the domain
    EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

    # C0 control characters except tab/newline/carriage return, plus DEL
    CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class EmailValidator:
    """Email validation and normalization"""

    MAX_LENGTH = 255

    @staticmethod
    def validate(email: str) -> bool:
        if not email:
            return False
        email = email.strip()
        if len(email) > EmailValidator.MAX_LENGTH:
            return False
        return bool(ValidationPatterns.EMAIL.match(email))

    @staticmethod
    def normalize(email: str) -> str:
        """Strip and lower-case; two spellings of one mailbox map to one identity"""
        return email.strip().lower()


class TextSanitizer:
    """Text sanitization for safe storage"""

    @staticmethod
    def sanitize(text: str, max_length: int = 1000) -> str:
        """
        Sanitize text input for safe storage.

        This does NOT HTML escape; that belongs to whoever renders it. It only:
        - Trims whitespace
        - Removes null bytes and control characters
        - Collapses runs of spaces
        - Enforces max length
        """
        if not text:
            return ""

        sanitized = ValidationPatterns.CONTROL_CHARACTERS.sub("", text.strip())
        sanitized = re.sub(r" +", " ", sanitized)
        return sanitized[:max_length]


def email_validator(v: str) -> str:
    """Pydantic field validator for email fields"""
    if not EmailValidator.validate(v):
        raise ValueError("invalid email address")
    return EmailValidator.normalize(v)


def notes_validator(v: str | None, max_length: int = 500) -> str:
    """Pydantic field validator for transfer notes"""
    if v is None:
        return ""
    return TextSanitizer.sanitize(v, max_length=max_length)
