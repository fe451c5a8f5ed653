# achievement_api/services/reference_gateway.py
"""
Relational side of an achievement: workflow status, timestamps, verifier and
the soft-delete marker. Every write commits together with its status history
row.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.deadline import bounded
from achievement_api.core.errors import InvalidState, NotFound
from achievement_api.models.achievement import (
    TRANSITIONS,
    AchievementReference,
    AchievementStatus,
    AchievementStatusHistory,
)
from achievement_api.models.user import StudentProfile, User
from achievement_api.services.store_errors import sql_errors
from achievement_api.utils.dates import utcnow

ACTIONS = {
    AchievementStatus.SUBMITTED: "submit",
    AchievementStatus.VERIFIED: "verify",
    AchievementStatus.REJECTED: "reject",
}


def _scoped(stmt, student_ids: Optional[Iterable[str]]):
    if student_ids is None:
        return stmt
    return stmt.where(AchievementReference.student_id.in_(list(student_ids)))


class ReferenceGateway:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self, operation: str) -> None:
        try:
            await bounded(self.session.commit(), operation)
        except BaseException:
            await self.session.rollback()
            raise

    @asynccontextmanager
    async def _writing(self, operation: str) -> AsyncIterator[None]:
        # a failed write leaves the session usable for whatever runs next
        try:
            with sql_errors(operation):
                yield
        except BaseException:
            await self.session.rollback()
            raise

    async def insert_draft(self, student_id: str, detail_id: str, created_by: Optional[str] = None) -> AchievementReference:
        now = utcnow()
        reference = AchievementReference(
            student_id=student_id,
            detail_id=detail_id,
            status=AchievementStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        async with self._writing("insert reference"):
            self.session.add(reference)
            await bounded(self.session.flush(), "insert reference")
            self.session.add(
                AchievementStatusHistory(
                    achievement_id=reference.id,
                    action="create",
                    from_status=None,
                    to_status=AchievementStatus.DRAFT.value,
                    changed_by=created_by,
                    changed_at=now,
                )
            )
            await self._commit("insert reference")
        return reference

    async def get_by_id(self, reference_id: str) -> Optional[AchievementReference]:
        """Fetch a reference, soft-deleted or not."""
        with sql_errors("get reference"):
            return await bounded(
                self.session.get(AchievementReference, reference_id, populate_existing=True),
                "get reference",
            )

    async def get_by_detail_id(self, detail_id: str) -> Optional[AchievementReference]:
        with sql_errors("get reference by detail"):
            return await bounded(
                self.session.scalar(
                    select(AchievementReference).where(AchievementReference.detail_id == detail_id)
                ),
                "get reference by detail",
            )

    async def get_by_student_ids(self, student_ids: Iterable[str]) -> List[AchievementReference]:
        ids = list(student_ids)
        if not ids:
            return []
        return await self._list(ids)

    async def get_all(self) -> List[AchievementReference]:
        return await self._list(None)

    async def _list(self, student_ids: Optional[List[str]]) -> List[AchievementReference]:
        stmt = _scoped(
            select(AchievementReference).where(AchievementReference.deleted_at.is_(None)),
            student_ids,
        ).order_by(desc(AchievementReference.created_at))
        with sql_errors("list references"):
            result = await bounded(self.session.scalars(stmt), "list references")
            return list(result.all())

    async def transition(
        self,
        reference_id: str,
        new_status: AchievementStatus,
        *,
        expected: AchievementStatus,
        note: Optional[str] = None,
        verifier: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> AchievementReference:
        """
        Compare-and-set the status from ``expected`` to ``new_status``.

        The row is updated only if it is live and still in ``expected``; a
        concurrent writer that got there first leaves zero matched rows and the
        caller sees not-found or invalid-state.
        """
        if new_status not in TRANSITIONS[expected]:
            raise InvalidState(f"cannot move from {expected.value} to {new_status.value}")

        now = utcnow()
        values = {"status": new_status, "updated_at": now}
        if new_status == AchievementStatus.SUBMITTED:
            values["submitted_at"] = func.coalesce(AchievementReference.submitted_at, now)
        if new_status in (AchievementStatus.VERIFIED, AchievementStatus.REJECTED):
            values["verified_at"] = now
            values["verified_by"] = verifier
            values["rejection_note"] = note if new_status == AchievementStatus.REJECTED else None

        stmt = (
            update(AchievementReference)
            .where(
                AchievementReference.id == reference_id,
                AchievementReference.status == expected,
                AchievementReference.deleted_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        operation = f"{ACTIONS[new_status]} reference"
        async with self._writing(operation):
            result = await bounded(self.session.execute(stmt), operation)
            if result.rowcount == 0:
                await self.session.rollback()
                await self._raise_unmatched(reference_id, new_status)
            self.session.add(
                AchievementStatusHistory(
                    achievement_id=reference_id,
                    action=ACTIONS[new_status],
                    from_status=expected.value,
                    to_status=new_status.value,
                    changed_by=changed_by,
                    note=note,
                    changed_at=now,
                )
            )
            await self._commit(operation)
        return await self._reload(reference_id)

    async def soft_delete(
        self,
        reference_id: str,
        *,
        expected: Optional[AchievementStatus] = AchievementStatus.DRAFT,
        changed_by: Optional[str] = None,
    ) -> AchievementReference:
        """Mark a live reference deleted. ``expected=None`` skips the status guard."""
        now = utcnow()
        conditions = [
            AchievementReference.id == reference_id,
            AchievementReference.deleted_at.is_(None),
        ]
        if expected is not None:
            conditions.append(AchievementReference.status == expected)

        async with self._writing("delete reference"):
            prior = await bounded(
                self.session.scalar(select(AchievementReference.status).where(*conditions)),
                "delete reference",
            )
            result = await bounded(
                self.session.execute(
                    update(AchievementReference)
                    .where(*conditions)
                    .values(deleted_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                ),
                "delete reference",
            )
            if result.rowcount == 0:
                await self.session.rollback()
                await self._raise_unmatched(reference_id, None)
            self.session.add(
                AchievementStatusHistory(
                    achievement_id=reference_id,
                    action="delete",
                    from_status=prior.value if prior is not None else None,
                    to_status="deleted",
                    changed_by=changed_by,
                    changed_at=now,
                )
            )
            await self._commit("delete reference")
        return await self._reload(reference_id)

    async def is_soft_deleted(self, reference_id: str) -> bool:
        with sql_errors("check reference deleted"):
            deleted_at = await bounded(
                self.session.execute(
                    select(AchievementReference.deleted_at).where(AchievementReference.id == reference_id)
                ),
                "check reference deleted",
            )
            row = deleted_at.first()
        if row is None:
            raise NotFound("achievement not found")
        return row[0] is not None

    async def history(self, reference_id: str) -> List[AchievementStatusHistory]:
        stmt = (
            select(AchievementStatusHistory)
            .where(AchievementStatusHistory.achievement_id == reference_id)
            .order_by(AchievementStatusHistory.changed_at, AchievementStatusHistory.id)
        )
        with sql_errors("list history"):
            result = await bounded(self.session.scalars(stmt), "list history")
            return list(result.all())

    async def _reload(self, reference_id: str) -> AchievementReference:
        reference = await self.get_by_id(reference_id)
        if reference is None:
            raise NotFound("achievement not found")
        return reference

    async def _raise_unmatched(self, reference_id: str, new_status: Optional[AchievementStatus]) -> None:
        current = await self.get_by_id(reference_id)
        if current is None or current.deleted_at is not None:
            raise NotFound("achievement not found")
        if new_status is None:
            raise InvalidState(f"cannot delete an achievement in {current.status.value}")
        raise InvalidState(f"cannot move from {current.status.value} to {new_status.value}")

    # aggregations

    async def status_histogram(self, student_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        stmt = _scoped(
            select(AchievementReference.status, func.count(AchievementReference.id)).where(
                AchievementReference.deleted_at.is_(None)
            ),
            student_ids,
        ).group_by(AchievementReference.status)
        with sql_errors("status histogram"):
            result = await bounded(self.session.execute(stmt), "status histogram")
            counts = {status.value: 0 for status in AchievementStatus}
            for status, count in result.all():
                counts[AchievementStatus(status).value] = count
            return counts

    async def submission_times(
        self, since: datetime, student_ids: Optional[Iterable[str]] = None
    ) -> List[datetime]:
        """``submitted_at`` of every live reference submitted on or after ``since``."""
        stmt = _scoped(
            select(AchievementReference.submitted_at).where(
                AchievementReference.deleted_at.is_(None),
                AchievementReference.submitted_at.is_not(None),
                AchievementReference.submitted_at >= since,
            ),
            student_ids,
        )
        with sql_errors("monthly trend"):
            result = await bounded(self.session.scalars(stmt), "monthly trend")
            return list(result.all())

    async def top_students(self, limit: int, student_ids: Optional[Iterable[str]] = None) -> List[dict]:
        verified = func.count(AchievementReference.id).label("verified_count")
        stmt = _scoped(
            select(
                StudentProfile.id,
                StudentProfile.student_number,
                User.full_name,
                verified,
            )
            .select_from(AchievementReference)
            .join(StudentProfile, StudentProfile.id == AchievementReference.student_id)
            .join(User, User.id == StudentProfile.user_id)
            .where(
                AchievementReference.status == AchievementStatus.VERIFIED,
                AchievementReference.deleted_at.is_(None),
            ),
            student_ids,
        )
        stmt = (
            stmt.group_by(StudentProfile.id, StudentProfile.student_number, User.full_name)
            .order_by(desc(verified), StudentProfile.student_number)
            .limit(limit)
        )
        with sql_errors("top students"):
            result = await bounded(self.session.execute(stmt), "top students")
            return [
                {
                    "student_id": row.id,
                    "student_number": row.student_number,
                    "full_name": row.full_name,
                    "verified_count": row.verified_count,
                }
                for row in result.all()
            ]
