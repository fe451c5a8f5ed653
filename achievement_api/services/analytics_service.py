# achievement_api/services/analytics_service.py
import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from achievement_api.config import settings
from achievement_api.core.errors import NotFound, PartialAggregationError
from achievement_api.models.achievement import AchievementStatus
from achievement_api.schemas.report import MonthCount, StatisticsReport, StudentReport, TopStudent
from achievement_api.services.achievement_service import AchievementService
from achievement_api.services.authorization import (
    Actor,
    Operation,
    Target,
    ensure_allowed,
    visible_student_ids,
)
from achievement_api.services.detail_gateway import DetailGateway
from achievement_api.services.reference_gateway import ReferenceGateway
from achievement_api.services.student_service import StudentService, student_out
from achievement_api.utils.dates import last_months, month_key, month_start, utcnow

logger = logging.getLogger(__name__)


def scope_name(actor: Actor) -> str:
    if actor.is_admin:
        return "all"
    if actor.advisor_profile_id:
        return "advisees"
    return "self"


class AnalyticsService:
    """
    Statistics across both stores.

    Sub-queries run concurrently; relational ones each open their own
    session since a session cannot be shared between tasks. Any failed
    sub-query fails the whole report.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        details: DetailGateway,
        top_limit: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.details = details
        self.top_limit = top_limit or settings.TOP_STUDENTS_LIMIT

    async def _relational(self, query: Callable[[ReferenceGateway], Awaitable[Any]]) -> Any:
        async with self.session_factory() as session:
            return await query(ReferenceGateway(session))

    async def _gather(self, subqueries: Dict[str, Callable[[], Awaitable[Any]]]) -> Dict[str, Any]:
        names = list(subqueries)
        results = await asyncio.gather(*(subqueries[name]() for name in names), return_exceptions=True)
        merged = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("aggregation sub-query failed name=%s error=%r", name, result)
                raise PartialAggregationError(name) from result
            merged[name] = result
        return merged

    async def monthly_trend(self, gateway: ReferenceGateway, scope, months: int = 12):
        keys = last_months(months)
        submitted = await gateway.submission_times(month_start(keys[0]), scope)
        counts = Counter(month_key(moment) for moment in submitted)
        return [MonthCount(month=key, count=counts.get(key, 0)) for key in keys]

    async def statistics(self, actor: Actor) -> StatisticsReport:
        ensure_allowed(actor, Operation.REPORT)
        scope = visible_student_ids(actor)

        results = await self._gather(
            {
                "total": lambda: self.details.count(scope),
                "statusHistogram": lambda: self._relational(lambda g: g.status_histogram(scope)),
                "monthlyTrend": lambda: self._relational(lambda g: self.monthly_trend(g, scope)),
                "topStudents": lambda: self._relational(lambda g: g.top_students(self.top_limit, scope)),
                "typeDistribution": lambda: self.details.type_distribution(scope),
                "eventYearDistribution": lambda: self.details.event_year_distribution(scope),
                "competitionLevelDistribution": lambda: self.details.competition_level_distribution(scope),
            }
        )
        return StatisticsReport(
            scope=scope_name(actor),
            generated_at=utcnow(),
            total=results["total"],
            status_histogram=results["statusHistogram"],
            monthly_trend=results["monthlyTrend"],
            top_students=[TopStudent(**row) for row in results["topStudents"]],
            type_distribution=results["typeDistribution"],
            event_year_distribution=results["eventYearDistribution"],
            competition_level_distribution=results["competitionLevelDistribution"],
        )

    async def student_report(
        self,
        actor: Actor,
        student_id: str,
        session: AsyncSession,
        achievements: AchievementService,
    ) -> StudentReport:
        ensure_allowed(actor, Operation.STUDENT_REPORT)
        student = await StudentService(session).get_profile(student_id)
        if student is None:
            raise NotFound("student not found")
        ensure_allowed(actor, Operation.STUDENT_REPORT, Target(student_id=student.id))

        references = await achievements.references.get_by_student_ids([student.id])
        views = await achievements.join(references)
        histogram = {status.value: 0 for status in AchievementStatus}
        for view in views:
            histogram[view.status.value] += 1
        return StudentReport(
            student=student_out(student),
            achievements=views,
            status_histogram=histogram,
            total_points=sum(v.points for v in views),
            verified_points=sum(v.points for v in views if v.status == AchievementStatus.VERIFIED),
        )
