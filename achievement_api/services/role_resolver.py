# achievement_api/services/role_resolver.py
"""
Resolve an authenticated identity into an Actor.

Students and advisors must own the profile that matches their role. A user
who also owns the other profile is still resolved, with both ids on the
Actor, and a warning is logged. The role still decides the permission set,
so the extra profile only widens what the role is already allowed to read.
"""
import logging
from typing import FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.deadline import bounded
from achievement_api.core.errors import ProfileMissing
from achievement_api.core.identity import Identity
from achievement_api.models.user import AdvisorProfile, StudentProfile
from achievement_api.services.authorization import Actor, RoleName, normalize_role, permissions_for
from achievement_api.services.store_errors import sql_errors

logger = logging.getLogger(__name__)


class RoleResolver:
    """Maps an authenticated identity to the profile ids it owns."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def student_profile_id(self, user_id: str) -> Optional[str]:
        with sql_errors("resolve student profile"):
            return await bounded(
                self.session.scalar(select(StudentProfile.id).where(StudentProfile.user_id == user_id)),
                "resolve student profile",
            )

    async def advisor_profile_id(self, user_id: str) -> Optional[str]:
        with sql_errors("resolve advisor profile"):
            return await bounded(
                self.session.scalar(select(AdvisorProfile.id).where(AdvisorProfile.user_id == user_id)),
                "resolve advisor profile",
            )

    async def advisee_ids(self, advisor_id: str) -> FrozenSet[str]:
        with sql_errors("resolve advisees"):
            result = await bounded(
                self.session.scalars(select(StudentProfile.id).where(StudentProfile.advisor_id == advisor_id)),
                "resolve advisees",
            )
            return frozenset(result.all())

    async def resolve(self, identity: Identity) -> Actor:
        role = normalize_role(identity.role)
        student_id = await self.student_profile_id(identity.user_id)
        advisor_id = await self.advisor_profile_id(identity.user_id)

        if role == RoleName.STUDENT and student_id is None:
            raise ProfileMissing("no student profile for this user")
        if role == RoleName.ADVISOR and advisor_id is None:
            raise ProfileMissing("no advisor profile for this user")
        if student_id and advisor_id and role != RoleName.ADMIN:
            logger.warning(
                "user holds both profiles user=%s role=%s student=%s advisor=%s",
                identity.user_id, role.value, student_id, advisor_id,
            )

        advisees = await self.advisee_ids(advisor_id) if advisor_id else frozenset()
        return Actor(
            user_id=identity.user_id,
            role=role,
            permissions=permissions_for(role, identity.permissions),
            student_profile_id=student_id,
            advisor_profile_id=advisor_id,
            advisee_ids=advisees,
        )
