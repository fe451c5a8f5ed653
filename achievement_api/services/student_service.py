# achievement_api/services/student_service.py
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.deadline import bounded
from achievement_api.core.errors import NotFound
from achievement_api.models.user import AdvisorProfile, StudentProfile
from achievement_api.schemas.student import AdvisorOut, StudentOut
from achievement_api.services.authorization import (
    Actor,
    Operation,
    RoleName,
    Target,
    ensure_allowed,
    visible_student_ids,
)
from achievement_api.services.store_errors import sql_errors
import logging

logger = logging.getLogger(__name__)


def student_out(student: StudentProfile) -> StudentOut:
    return StudentOut(
        id=student.id,
        user_id=student.user_id,
        student_number=student.student_number,
        full_name=student.user.full_name if student.user else None,
        program=student.program,
        year=student.year,
        advisor_id=student.advisor_id,
        created_at=student.created_at,
    )


def advisor_out(advisor: AdvisorProfile) -> AdvisorOut:
    return AdvisorOut(
        id=advisor.id,
        user_id=advisor.user_id,
        lecturer_number=advisor.lecturer_number,
        full_name=advisor.user.full_name if advisor.user else None,
        department=advisor.department,
        created_at=advisor.created_at,
    )


class StudentService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_profile(self, student_id: str) -> Optional[StudentProfile]:
        with sql_errors("get student"):
            return await bounded(self.session.get(StudentProfile, student_id), "get student")

    async def get_advisor_profile(self, advisor_id: str) -> Optional[AdvisorProfile]:
        with sql_errors("get advisor"):
            return await bounded(self.session.get(AdvisorProfile, advisor_id), "get advisor")

    async def list_students(self, actor: Actor) -> List[StudentOut]:
        ensure_allowed(actor, Operation.LIST_STUDENTS)
        stmt = select(StudentProfile).order_by(StudentProfile.student_number)
        scope = visible_student_ids(actor)
        if scope is not None:
            if not scope:
                return []
            stmt = stmt.where(StudentProfile.id.in_(list(scope)))
        with sql_errors("list students"):
            result = await bounded(self.session.scalars(stmt), "list students")
            return [student_out(s) for s in result.all()]

    async def get_student(self, actor: Actor, student_id: str) -> StudentOut:
        ensure_allowed(actor, Operation.READ_STUDENT)
        student = await self.get_profile(student_id)
        if student is None:
            raise NotFound("student not found")
        ensure_allowed(actor, Operation.READ_STUDENT, Target(student_id=student.id))
        return student_out(student)

    async def update_advisor(self, actor: Actor, student_id: str, advisor_id: Optional[str]) -> StudentOut:
        """Assign or clear a student's advisor. Admin only."""
        ensure_allowed(actor, Operation.UPDATE_ADVISOR)
        student = await self.get_profile(student_id)
        if student is None:
            raise NotFound("student not found")
        if advisor_id is not None and await self.get_advisor_profile(advisor_id) is None:
            raise NotFound("advisor not found")

        with sql_errors("update advisor"):
            student.advisor_id = advisor_id
            try:
                await bounded(self.session.commit(), "update advisor")
            except BaseException:
                await self.session.rollback()
                raise
        logger.info("advisor changed student=%s advisor=%s by=%s", student_id, advisor_id, actor.user_id)
        return student_out(student)

    async def list_advisors(self, actor: Actor) -> List[AdvisorOut]:
        ensure_allowed(actor, Operation.LIST_ADVISORS)
        stmt = select(AdvisorProfile).order_by(AdvisorProfile.lecturer_number)
        if actor.role == RoleName.ADVISOR:
            stmt = stmt.where(AdvisorProfile.id == actor.advisor_profile_id)
        elif actor.role == RoleName.STUDENT:
            student = await self.get_profile(actor.student_profile_id)
            if student is None or student.advisor_id is None:
                return []
            stmt = stmt.where(AdvisorProfile.id == student.advisor_id)
        with sql_errors("list advisors"):
            result = await bounded(self.session.scalars(stmt), "list advisors")
            return [advisor_out(a) for a in result.all()]

    async def advisees(self, actor: Actor, advisor_id: str) -> List[StudentOut]:
        ensure_allowed(actor, Operation.READ_ADVISEES)
        advisor = await self.get_advisor_profile(advisor_id)
        if advisor is None:
            raise NotFound("advisor not found")
        ensure_allowed(actor, Operation.READ_ADVISEES, Target(advisor_id=advisor.id))
        stmt = (
            select(StudentProfile)
            .where(StudentProfile.advisor_id == advisor.id)
            .order_by(StudentProfile.student_number)
        )
        with sql_errors("list advisees"):
            result = await bounded(self.session.scalars(stmt), "list advisees")
            return [student_out(s) for s in result.all()]
