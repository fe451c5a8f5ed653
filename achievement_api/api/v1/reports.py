# achievement_api/api/v1/reports.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.database import get_db
from achievement_api.core.deps import get_achievement_service, get_actor, get_analytics_service
from achievement_api.schemas.common import ok
from achievement_api.services.achievement_service import AchievementService
from achievement_api.services.analytics_service import AnalyticsService
from achievement_api.services.authorization import Actor

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/statistics")
async def statistics(
    actor: Actor = Depends(get_actor),
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    """
    Status histogram, monthly submission trend, top students and detail
    distributions, scoped to what the caller may see
    """
    return ok(await analytics.statistics(actor))


@router.get("/student/{student_id}")
async def student_report(
    student_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    analytics: AnalyticsService = Depends(get_analytics_service),
    achievements: AchievementService = Depends(get_achievement_service),
):
    return ok(await analytics.student_report(actor, student_id, db, achievements))
