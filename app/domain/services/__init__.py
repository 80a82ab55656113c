"""
Domain Services
"""
from app.domain.services.auth_service import AuthService
from app.domain.services.wallet_service import WalletService

__all__ = [
    "AuthService",
    "WalletService",
]
