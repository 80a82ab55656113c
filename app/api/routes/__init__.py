"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.auth import router as auth_router
from app.api.routes.wallet import router as wallet_router

router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["Auth"])
router.include_router(wallet_router, tags=["Wallet"])
