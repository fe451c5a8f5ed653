# achievement_api/services/auth_service.py
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.deadline import bounded
from achievement_api.core.errors import Forbidden, Unauthenticated
from achievement_api.core.identity import Identity, IdentityEnvelope
from achievement_api.core.integrity import IntegrityChannel
from achievement_api.core.security import create_access_token, create_refresh_token, verify_password
from achievement_api.models.user import User
from achievement_api.schemas.auth import LoginResponse, RefreshResponse, UserSummary
from achievement_api.services.authorization import normalize_role, permissions_for
from achievement_api.services.store_errors import sql_errors

logger = logging.getLogger(__name__)


def permission_names(user: User) -> List[str]:
    role = normalize_role(user.role.name)
    granted = [p.name for p in user.role.permissions]
    return sorted(permissions_for(role, granted))


def summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        role=normalize_role(user.role.name).value,
        permissions=permission_names(user),
    )


class AuthService:
    def __init__(
        self,
        session: AsyncSession,
        envelope: IdentityEnvelope,
        integrity: Optional[IntegrityChannel] = None,
    ):
        self.session = session
        self.envelope = envelope
        self.integrity = integrity or IntegrityChannel()

    async def _get_user(self, user_id: str) -> Optional[User]:
        with sql_errors("get user"):
            return await bounded(self.session.get(User, user_id), "get user")

    async def _get_by_username(self, username: str) -> Optional[User]:
        with sql_errors("get user"):
            return await bounded(
                self.session.scalar(select(User).where(User.username == username)),
                "get user",
            )

    def _access_token(self, user: User) -> str:
        token, _, _ = create_access_token(
            user.id,
            normalize_role(user.role.name).value,
            permission_names(user),
            secret_key=self.envelope.secret_key,
        )
        return token

    async def login(self, username: str, password: str) -> LoginResponse:
        user = await self._get_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("login failed username=%s", username)
            raise Unauthenticated("invalid username or password")
        if not user.is_active:
            raise Forbidden("account is inactive")

        logger.info("login user=%s", user.id)
        return LoginResponse(
            token=self._access_token(user),
            refresh_token=create_refresh_token(user.id, secret_key=self.envelope.secret_key),
            user=summary(user),
        )

    async def refresh(self, refresh_token: Optional[str]) -> RefreshResponse:
        user_id = self.envelope.open_refresh(refresh_token)
        user = await self._get_user(user_id)
        if user is None or not user.is_active:
            raise Unauthenticated("user is no longer active")
        return RefreshResponse(token=self._access_token(user))

    def logout(self, identity: Identity) -> None:
        self.envelope.revoke(identity)
        self.integrity.logout(identity.user_id, identity.token_id)

    async def profile(self, identity: Identity) -> UserSummary:
        user = await self._get_user(identity.user_id)
        if user is None:
            raise Unauthenticated("user no longer exists")
        return summary(user)
