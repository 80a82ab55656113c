"""
Tests for Settings validation
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.core.config import Settings


@pytest.mark.unit
def test_empty_jwt_secret_refused_in_production():
    with pytest.raises(ValidationError):
        Settings(JWT_SECRET_KEY="", DEBUG=False)


@pytest.mark.unit
def test_empty_jwt_secret_warns_in_debug():
    with pytest.warns(UserWarning):
        Settings(JWT_SECRET_KEY="", DEBUG=True)


@pytest.mark.unit
@pytest.mark.parametrize("raw", [
    "postgres://u:p@db:5432/wallet",
    "postgresql://u:p@db:5432/wallet",
])
def test_database_url_converted_to_asyncpg(raw):
    s = Settings(JWT_SECRET_KEY="x", DATABASE_URL=raw)
    assert s.DATABASE_URL == "postgresql+asyncpg://u:p@db:5432/wallet"


@pytest.mark.unit
def test_session_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(JWT_SECRET_KEY="x", SESSION_TIMEOUT_MINUTES=0)


@pytest.mark.unit
def test_initial_balance_quantized():
    s = Settings(JWT_SECRET_KEY="x", INITIAL_WALLET_BALANCE="250.5")
    assert s.INITIAL_WALLET_BALANCE == Decimal("250.50")
    assert str(s.INITIAL_WALLET_BALANCE) == "250.50"


@pytest.mark.unit
def test_negative_initial_balance_refused():
    with pytest.raises(ValidationError):
        Settings(JWT_SECRET_KEY="x", INITIAL_WALLET_BALANCE="-1")


@pytest.mark.unit
def test_defaults():
    s = Settings(JWT_SECRET_KEY="x")
    assert s.SESSION_TIMEOUT_MINUTES == 15
    assert s.INITIAL_WALLET_BALANCE == Decimal("1000.00")
    assert s.WALLET_HISTORY_LIMIT == 50
