# achievement_api/services/achievement_service.py
"""
Achievement lifecycle: sequences writes across the relational reference and
the detail document, enforces the status workflow, and joins the two halves
for reads.

Creates write the detail first and the reference second, removing the detail
if the reference insert fails. Deletes soft-delete the detail first and the
reference second, restoring the detail if the reference step fails. A read
that finds a live reference without a live detail reports ``Inconsistent``
so the client can retry.
"""
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from achievement_api.config import settings
from achievement_api.core.deadline import run_compensation
from achievement_api.core.errors import (
    DeadlineExceeded,
    Forbidden,
    Inconsistent,
    NotFound,
    ProfileMissing,
    StoreUnavailable,
    ValidationFailed,
)
from achievement_api.core.integrity import IntegrityChannel
from achievement_api.models.achievement import AchievementReference, AchievementStatus, AchievementStatusHistory
from achievement_api.models.achievement_detail import (
    AchievementContent,
    AchievementDetail,
    AchievementDetails,
    Attachment,
)
from achievement_api.schemas.achievement import (
    AchievementCreate,
    AchievementDetailsIn,
    AchievementUpdate,
    AchievementView,
    AttachmentOut,
)
from achievement_api.services.attachment_storage import AttachmentStorage
from achievement_api.services.authorization import (
    Actor,
    Operation,
    RoleName,
    Target,
    ensure_allowed,
    visible_student_ids,
)
from achievement_api.services.detail_gateway import DetailGateway
from achievement_api.services.reference_gateway import ReferenceGateway
from achievement_api.utils.dates import parse_date

logger = logging.getLogger(__name__)

DETAIL_ID = re.compile(r"^[0-9a-fA-F]{24}$")


def validate_details(details: Optional[AchievementDetailsIn]) -> None:
    if details is None:
        return
    try:
        parse_date(details.event_date, "eventDate")
        parse_date(details.valid_until, "validUntil")
        if details.period is not None:
            parse_date(details.period.start, "period.start")
            parse_date(details.period.end, "period.end")
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc


def to_document_details(details: Optional[AchievementDetailsIn]) -> AchievementDetails:
    if details is None:
        return AchievementDetails()
    return AchievementDetails(**details.model_dump())


def compose(reference: AchievementReference, detail: AchievementDetail) -> AchievementView:
    """Reference fields win for workflow state; content comes from the detail."""
    return AchievementView(
        id=reference.id,
        detail_id=reference.detail_id,
        student_id=reference.student_id,
        status=reference.status,
        type=detail.type,
        title=detail.title,
        description=detail.description,
        tags=list(detail.tags or []),
        points=detail.points,
        details=AchievementDetailsIn(**detail.details.model_dump()),
        attachments=[AttachmentOut(**a.model_dump()) for a in (detail.attachments or [])],
        submitted_at=reference.submitted_at,
        verified_at=reference.verified_at,
        verified_by=reference.verified_by,
        rejection_note=reference.rejection_note,
        created_at=reference.created_at,
        updated_at=max(reference.updated_at, detail.updated_at),
    )


class AchievementService:
    def __init__(
        self,
        references: ReferenceGateway,
        details: DetailGateway,
        integrity: Optional[IntegrityChannel] = None,
        storage: Optional[AttachmentStorage] = None,
        compensation_timeout: Optional[float] = None,
    ):
        self.references = references
        self.details = details
        self.integrity = integrity or IntegrityChannel()
        self.storage = storage or AttachmentStorage()
        self.compensation_timeout = compensation_timeout or settings.COMPENSATION_TIMEOUT_SECONDS

    # lookups

    async def resolve(self, achievement_id: str) -> Optional[AchievementReference]:
        """Accept either the reference id or the detail document id."""
        if DETAIL_ID.match(achievement_id or ""):
            return await self.references.get_by_detail_id(achievement_id.lower())
        return await self.references.get_by_id(achievement_id)

    async def _load(
        self,
        actor: Actor,
        op: Operation,
        achievement_id: str,
        include_deleted: bool = False,
    ) -> AchievementReference:
        # permission first: without it the caller learns nothing about existence
        ensure_allowed(actor, op)
        reference = await self.resolve(achievement_id)
        if reference is None or (reference.deleted_at is not None and not include_deleted):
            raise NotFound("achievement not found")
        ensure_allowed(actor, op, Target(student_id=reference.student_id, status=reference.status))
        return reference

    async def _live_detail(self, reference: AchievementReference) -> AchievementDetail:
        detail = await self.details.get_by_id(reference.detail_id)
        if detail is None or detail.deleted_at is not None:
            self.integrity.detail_missing(reference.id, reference.detail_id, soft_deleted=detail is not None)
            raise Inconsistent("achievement detail is temporarily unavailable, retry")
        return detail

    async def _compensate(
        self,
        operation: str,
        reference_id: Optional[str],
        detail_id: str,
        original: BaseException,
        action: Callable[[], Awaitable[Any]],
    ) -> Any:
        logger.warning("compensating %s detail=%s after %r", operation, detail_id, original)
        try:
            return await run_compensation(action, self.compensation_timeout)
        except Exception as exc:
            self.integrity.compensation_failed(operation, reference_id, detail_id, original, exc)
            raise Inconsistent(f"{operation} failed and could not be rolled back") from original

    # create

    def _target_student(self, actor: Actor, payload: AchievementCreate) -> str:
        if actor.role == RoleName.STUDENT:
            return payload.target_student_id or actor.student_profile_id
        if actor.role == RoleName.ADMIN:
            if not payload.target_student_id:
                raise ValidationFailed("targetStudentId is required")
            return payload.target_student_id
        raise Forbidden("only students and admins may create achievements")

    async def create(self, actor: Actor, payload: AchievementCreate) -> AchievementReference:
        ensure_allowed(actor, Operation.CREATE)
        student_id = self._target_student(actor, payload)
        ensure_allowed(actor, Operation.CREATE, Target(student_id=student_id))
        validate_details(payload.details)

        content = AchievementContent(
            student_id=student_id,
            type=payload.type,
            title=payload.title,
            description=payload.description,
            tags=list(payload.tags),
            points=payload.points,
            details=to_document_details(payload.details),
        )
        detail_id = await self.details.insert(content)

        try:
            reference = await self.references.insert_draft(student_id, detail_id, created_by=actor.user_id)
        except BaseException as exc:
            await self._compensate("create", None, detail_id, exc, lambda: self.details.hard_delete(detail_id))
            raise

        logger.info("achievement created id=%s detail=%s student=%s", reference.id, detail_id, student_id)
        return reference

    # reads

    async def get(self, actor: Actor, achievement_id: str) -> AchievementView:
        reference = await self._load(actor, Operation.READ, achievement_id)
        detail = await self._live_detail(reference)
        return compose(reference, detail)

    async def join(self, references: List[AchievementReference]) -> List[AchievementView]:
        if not references:
            return []
        details = await self.details.get_by_ids([r.detail_id for r in references])
        by_id: Dict[str, AchievementDetail] = {str(d.id): d for d in details}
        views = []
        for reference in references:
            detail = by_id.get(reference.detail_id)
            if detail is None:
                # left to the integrity alert path
                continue
            views.append(compose(reference, detail))
        return views

    async def list(self, actor: Actor) -> List[AchievementView]:
        ensure_allowed(actor, Operation.LIST)
        scope = visible_student_ids(actor)
        if scope is None:
            references = await self.references.get_all()
        else:
            references = await self.references.get_by_student_ids(scope)
        return await self.join(references)

    async def list_by_student(self, actor: Actor, student_id: str) -> List[AchievementView]:
        ensure_allowed(actor, Operation.LIST_BY_STUDENT)
        ensure_allowed(actor, Operation.LIST_BY_STUDENT, Target(student_id=student_id))
        references = await self.references.get_by_student_ids([student_id])
        return await self.join(references)

    async def history(self, actor: Actor, achievement_id: str) -> List[AchievementStatusHistory]:
        reference = await self._load(actor, Operation.HISTORY, achievement_id, include_deleted=actor.is_admin)
        return await self.references.history(reference.id)

    # detail edits

    async def update(self, actor: Actor, achievement_id: str, payload: AchievementUpdate) -> AchievementView:
        reference = await self._load(actor, Operation.UPDATE, achievement_id)

        patch: Dict[str, Any] = {}
        for name in payload.model_fields_set:
            value = getattr(payload, name)
            if value is None and name != "description":
                raise ValidationFailed(f"{name} cannot be null")
            patch[name] = value
        if not patch:
            raise ValidationFailed("nothing to update")
        if "details" in patch:
            validate_details(payload.details)
            patch["details"] = to_document_details(payload.details).model_dump()

        try:
            await self.details.replace_fields(reference.detail_id, patch)
        except NotFound:
            self.integrity.detail_missing(reference.id, reference.detail_id, soft_deleted=False)
            raise Inconsistent("achievement detail is temporarily unavailable, retry")
        logger.info("achievement updated id=%s fields=%s", reference.id, sorted(patch))
        return compose(reference, await self._live_detail(reference))

    async def add_attachment(
        self,
        actor: Actor,
        achievement_id: str,
        file_name: Optional[str],
        content_type: Optional[str],
        content: bytes,
    ) -> AchievementView:
        reference = await self._load(actor, Operation.UPLOAD, achievement_id)
        extension = self.storage.validate(file_name, len(content))

        path, url = await self.storage.save(reference.detail_id, file_name, content)
        attachment = Attachment(file_name=file_name, file_url=url, file_type=content_type or extension.lstrip("."))
        try:
            await self.details.append_attachment(reference.detail_id, attachment)
        except BaseException as exc:
            try:
                await self.storage.remove(path)
            except OSError as remove_exc:
                self.integrity.orphaned_file(path, remove_exc)
            if isinstance(exc, NotFound):
                self.integrity.detail_missing(reference.id, reference.detail_id, soft_deleted=False)
                raise Inconsistent("achievement detail is temporarily unavailable, retry") from exc
            raise
        logger.info("attachment added id=%s file=%s", reference.id, path)
        return compose(reference, await self._live_detail(reference))

    # workflow

    async def submit(self, actor: Actor, achievement_id: str) -> AchievementReference:
        reference = await self._load(actor, Operation.SUBMIT, achievement_id)
        updated = await self.references.transition(
            reference.id,
            AchievementStatus.SUBMITTED,
            expected=AchievementStatus.DRAFT,
            changed_by=actor.user_id,
        )
        logger.info("achievement submitted id=%s", reference.id)
        return updated

    def _verifier(self, actor: Actor) -> str:
        if not actor.advisor_profile_id:
            raise ProfileMissing("verification requires an advisor profile")
        return actor.advisor_profile_id

    async def verify(self, actor: Actor, achievement_id: str) -> AchievementReference:
        reference = await self._load(actor, Operation.VERIFY, achievement_id)
        updated = await self.references.transition(
            reference.id,
            AchievementStatus.VERIFIED,
            expected=AchievementStatus.SUBMITTED,
            verifier=self._verifier(actor),
            changed_by=actor.user_id,
        )
        logger.info("achievement verified id=%s by=%s", reference.id, updated.verified_by)
        return updated

    async def reject(self, actor: Actor, achievement_id: str, note: Optional[str]) -> AchievementReference:
        reference = await self._load(actor, Operation.REJECT, achievement_id)
        note = (note or "").strip()
        if not note:
            raise ValidationFailed("rejectionNote is required")
        updated = await self.references.transition(
            reference.id,
            AchievementStatus.REJECTED,
            expected=AchievementStatus.SUBMITTED,
            note=note,
            verifier=self._verifier(actor),
            changed_by=actor.user_id,
        )
        logger.info("achievement rejected id=%s by=%s", reference.id, updated.verified_by)
        return updated

    # delete

    async def delete(self, actor: Actor, achievement_id: str) -> None:
        reference = await self._load(actor, Operation.DELETE, achievement_id)
        # plain values; a failed write rolls the session back and expires the instance
        reference_id, detail_id, prior_status = reference.id, reference.detail_id, reference.status

        detail_marked = True
        try:
            await self.details.soft_delete(detail_id)
        except NotFound:
            # detail already gone; deleting the reference converges both stores
            self.integrity.detail_missing(reference_id, detail_id, soft_deleted=True)
            detail_marked = False

        try:
            await self.references.soft_delete(
                reference_id,
                expected=None if actor.is_admin else AchievementStatus.DRAFT,
                changed_by=actor.user_id,
            )
        except BaseException as exc:
            if not detail_marked:
                raise

            async def undo() -> bool:
                try:
                    landed = await self.references.is_soft_deleted(reference_id)
                except (StoreUnavailable, DeadlineExceeded) as check_error:
                    # outcome unknown; never leave a live reference beside a deleted detail
                    logger.warning("could not read back reference id=%s: %r", reference_id, check_error)
                    landed = False
                if landed:
                    return False
                await self.details.restore(detail_id)
                return True

            restored = await self._compensate("delete", reference_id, detail_id, exc, undo)
            if restored or not isinstance(exc, Exception):
                raise
            logger.info("reference delete landed despite %r id=%s", exc, reference_id)

        if actor.is_admin:
            self.integrity.admin_override(actor.user_id, reference_id, prior_status.value, "delete")
        logger.info("achievement deleted id=%s", reference_id)
