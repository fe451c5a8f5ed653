# achievement_api/core/deps.py
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from achievement_api.core.database import get_db, get_session_factory
from achievement_api.core.identity import Identity, IdentityEnvelope
from achievement_api.core.integrity import IntegrityChannel
from achievement_api.services.achievement_service import AchievementService
from achievement_api.services.analytics_service import AnalyticsService
from achievement_api.services.attachment_storage import AttachmentStorage
from achievement_api.services.authorization import Actor
from achievement_api.services.detail_gateway import DetailGateway
from achievement_api.services.reference_gateway import ReferenceGateway
from achievement_api.services.role_resolver import RoleResolver

# missing headers are reported by the envelope as unauthenticated, not by FastAPI as 403
security = HTTPBearer(auto_error=False)

_envelope: Optional[IdentityEnvelope] = None
_integrity = IntegrityChannel()


def get_envelope() -> IdentityEnvelope:
    global _envelope
    if _envelope is None:
        _envelope = IdentityEnvelope()
    return _envelope


def get_integrity() -> IntegrityChannel:
    return _integrity


def get_detail_gateway() -> DetailGateway:
    return DetailGateway()


def get_storage() -> AttachmentStorage:
    return AttachmentStorage()


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    envelope: IdentityEnvelope = Depends(get_envelope),
) -> Identity:
    return envelope.open(credentials.credentials if credentials else None)


async def get_actor(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    return await RoleResolver(db).resolve(identity)


def get_achievement_service(
    db: AsyncSession = Depends(get_db),
    details: DetailGateway = Depends(get_detail_gateway),
    integrity: IntegrityChannel = Depends(get_integrity),
    storage: AttachmentStorage = Depends(get_storage),
) -> AchievementService:
    return AchievementService(ReferenceGateway(db), details, integrity=integrity, storage=storage)


def get_analytics_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    details: DetailGateway = Depends(get_detail_gateway),
) -> AnalyticsService:
    return AnalyticsService(session_factory, details)
