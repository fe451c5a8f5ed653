# achievement_api/api/v1/students.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.database import get_db
from achievement_api.core.deps import get_achievement_service, get_actor
from achievement_api.schemas.common import ok
from achievement_api.schemas.student import UpdateAdvisorRequest
from achievement_api.services.achievement_service import AchievementService
from achievement_api.services.authorization import Actor
from achievement_api.services.student_service import StudentService

router = APIRouter(prefix="/students", tags=["Students"])


@router.get("")
async def list_students(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return ok(await StudentService(db).list_students(actor))


@router.get("/{student_id}")
async def get_student(student_id: str, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return ok(await StudentService(db).get_student(actor, student_id))


@router.get("/{student_id}/achievements")
async def student_achievements(
    student_id: str,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    return ok(await service.list_by_student(actor, student_id))


@router.put("/{student_id}/advisor")
async def update_advisor(
    student_id: str,
    payload: UpdateAdvisorRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Assign a student's advisor (admin only); a null advisorId clears it"""
    student = await StudentService(db).update_advisor(actor, student_id, payload.advisor_id)
    return ok(student, "advisor updated")
