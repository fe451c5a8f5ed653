# achievement_api/api/v1/advisors.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.database import get_db
from achievement_api.core.deps import get_actor
from achievement_api.schemas.common import ok
from achievement_api.services.authorization import Actor
from achievement_api.services.student_service import StudentService

router = APIRouter(prefix="/advisors", tags=["Advisors"])


@router.get("")
async def list_advisors(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return ok(await StudentService(db).list_advisors(actor))


@router.get("/{advisor_id}/advisees")
async def list_advisees(advisor_id: str, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return ok(await StudentService(db).advisees(actor, advisor_id))
