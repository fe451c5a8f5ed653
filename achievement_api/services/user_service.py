# achievement_api/services/user_service.py
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.deadline import bounded
from achievement_api.core.errors import NotFound, ValidationFailed
from achievement_api.core.security import get_password_hash
from achievement_api.models.user import AdvisorProfile, Role, StudentProfile, User
from achievement_api.schemas.user import UserCreate, UserOut, UserUpdate
from achievement_api.services.authorization import Actor, Operation, RoleName, ensure_allowed, normalize_role
from achievement_api.services.store_errors import sql_errors

logger = logging.getLogger(__name__)


class UserService:
    """User administration. Every operation requires an admin actor."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self, operation: str) -> None:
        with sql_errors(operation):
            try:
                await bounded(self.session.commit(), operation)
            except BaseException:
                await self.session.rollback()
                raise

    async def _role(self, name: str) -> Role:
        role_name = normalize_role(name)
        with sql_errors("get role"):
            role = await bounded(self.session.scalar(select(Role).where(Role.name == role_name.value)), "get role")
        if role is None:
            raise ValidationFailed(f"role '{role_name.value}' is not configured")
        return role

    async def _profiles(self, user_id: str):
        with sql_errors("get profiles"):
            student_id = await bounded(
                self.session.scalar(select(StudentProfile.id).where(StudentProfile.user_id == user_id)),
                "get profiles",
            )
            advisor_id = await bounded(
                self.session.scalar(select(AdvisorProfile.id).where(AdvisorProfile.user_id == user_id)),
                "get profiles",
            )
        return student_id, advisor_id

    async def _out(self, user: User) -> UserOut:
        student_id, advisor_id = await self._profiles(user.id)
        return UserOut(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            role=normalize_role(user.role.name).value,
            is_active=user.is_active,
            student_profile_id=student_id,
            advisor_profile_id=advisor_id,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    async def _get(self, user_id: str) -> User:
        with sql_errors("get user"):
            user = await bounded(self.session.get(User, user_id), "get user")
        if user is None:
            raise NotFound("user not found")
        return user

    async def list_users(self, actor: Actor) -> List[UserOut]:
        ensure_allowed(actor, Operation.MANAGE_USERS)
        with sql_errors("list users"):
            result = await bounded(self.session.scalars(select(User).order_by(User.username)), "list users")
            users = list(result.all())
        return [await self._out(u) for u in users]

    async def get_user(self, actor: Actor, user_id: str) -> UserOut:
        ensure_allowed(actor, Operation.MANAGE_USERS)
        return await self._out(await self._get(user_id))

    async def create_user(self, actor: Actor, payload: UserCreate) -> UserOut:
        ensure_allowed(actor, Operation.MANAGE_USERS)
        role = await self._role(payload.role)
        role_name = RoleName(role.name)
        if role_name == RoleName.STUDENT and payload.student_profile is None:
            raise ValidationFailed("studentProfile is required for students")

        user = User(
            username=payload.username,
            email=payload.email,
            password_hash=get_password_hash(payload.password),
            full_name=payload.full_name,
            role_id=role.id,
            is_active=True,
        )
        with sql_errors("create user"):
            self.session.add(user)
            await bounded(self.session.flush(), "create user")
            if payload.student_profile is not None:
                self.session.add(StudentProfile(user_id=user.id, **payload.student_profile.model_dump()))
            if payload.advisor_profile is not None or role_name == RoleName.ADVISOR:
                profile = payload.advisor_profile.model_dump() if payload.advisor_profile else {}
                self.session.add(AdvisorProfile(user_id=user.id, **profile))
        await self._commit("create user")
        await self.session.refresh(user)
        logger.info("user created id=%s role=%s by=%s", user.id, role.name, actor.user_id)
        return await self._out(user)

    async def update_user(self, actor: Actor, user_id: str, payload: UserUpdate) -> UserOut:
        ensure_allowed(actor, Operation.MANAGE_USERS)
        user = await self._get(user_id)
        for name in payload.model_fields_set:
            value = getattr(payload, name)
            if value is None:
                raise ValidationFailed(f"{name} cannot be null")
            setattr(user, name, value)
        await self._commit("update user")
        await self.session.refresh(user)
        return await self._out(user)

    async def deactivate(self, actor: Actor, user_id: str) -> UserOut:
        ensure_allowed(actor, Operation.MANAGE_USERS)
        if user_id == actor.user_id:
            raise ValidationFailed("admins cannot deactivate themselves")
        user = await self._get(user_id)
        user.is_active = False
        await self._commit("deactivate user")
        await self.session.refresh(user)
        logger.info("user deactivated id=%s by=%s", user_id, actor.user_id)
        return await self._out(user)

    async def change_role(self, actor: Actor, user_id: str, role_name: str) -> UserOut:
        ensure_allowed(actor, Operation.MANAGE_USERS)
        user = await self._get(user_id)
        role = await self._role(role_name)
        user.role_id = role.id
        await self._commit("change role")
        await self.session.refresh(user, attribute_names=["role", "updated_at"])
        logger.info("role changed user=%s role=%s by=%s", user_id, role.name, actor.user_id)
        return await self._out(user)
