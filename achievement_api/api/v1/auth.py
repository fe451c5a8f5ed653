# achievement_api/api/v1/auth.py
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.database import get_db
from achievement_api.core.deps import get_envelope, get_identity, get_integrity, security
from achievement_api.core.identity import Identity, IdentityEnvelope
from achievement_api.core.integrity import IntegrityChannel
from achievement_api.schemas.auth import LoginRequest, RefreshRequest
from achievement_api.schemas.common import ok
from achievement_api.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    envelope: IdentityEnvelope = Depends(get_envelope),
    integrity: IntegrityChannel = Depends(get_integrity),
) -> AuthService:
    return AuthService(db, envelope, integrity)


@router.post("/login")
async def login(payload: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """Exchange username and password for an access and a refresh token"""
    return ok(await service.login(payload.username, payload.password))


@router.post("/refresh")
async def refresh(
    payload: Optional[RefreshRequest] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: AuthService = Depends(get_auth_service),
):
    """Mint a new access token from a refresh token in the body or the bearer header"""
    token = payload.refresh_token if payload and payload.refresh_token else None
    if token is None and credentials is not None:
        token = credentials.credentials
    return ok(await service.refresh(token))


@router.post("/logout")
async def logout(
    identity: Identity = Depends(get_identity),
    service: AuthService = Depends(get_auth_service),
):
    service.logout(identity)
    return ok(None, "logged out")


@router.get("/profile")
async def profile(
    identity: Identity = Depends(get_identity),
    service: AuthService = Depends(get_auth_service),
):
    return ok(await service.profile(identity))
