# achievement_api/api/v1/achievements.py
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from achievement_api.core.deps import get_achievement_service, get_actor
from achievement_api.schemas.achievement import (
    AchievementCreate,
    AchievementCreated,
    AchievementUpdate,
    HistoryEntry,
    RejectRequest,
    StatusChange,
)
from achievement_api.schemas.common import ok
from achievement_api.services.achievement_service import AchievementService
from achievement_api.services.authorization import Actor

router = APIRouter(prefix="/achievements", tags=["Achievements"])


@router.get("")
async def list_achievements(
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    List achievements visible to the caller: own for students, advisees for
    advisors, everything for admins
    """
    return ok(await service.list(actor))


@router.post("", status_code=201)
async def create_achievement(
    payload: AchievementCreate,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    """Create a draft achievement"""
    reference = await service.create(actor, payload)
    return ok(AchievementCreated.model_validate(reference), "achievement created")


@router.get("/{achievement_id}")
async def get_achievement(
    achievement_id: str,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    return ok(await service.get(actor, achievement_id))


@router.put("/{achievement_id}")
async def update_achievement(
    achievement_id: str,
    payload: AchievementUpdate,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    """Update a draft's content"""
    return ok(await service.update(actor, achievement_id, payload), "achievement updated")


@router.delete("/{achievement_id}")
async def delete_achievement(
    achievement_id: str,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    await service.delete(actor, achievement_id)
    return ok(None, "achievement deleted")


@router.post("/{achievement_id}/submit")
async def submit_achievement(
    achievement_id: str,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    """Send a draft to the student's advisor for verification"""
    reference = await service.submit(actor, achievement_id)
    return ok(StatusChange.model_validate(reference), "achievement submitted")


@router.post("/{achievement_id}/verify")
async def verify_achievement(
    achievement_id: str,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    reference = await service.verify(actor, achievement_id)
    return ok(StatusChange.model_validate(reference), "achievement verified")


@router.post("/{achievement_id}/reject")
async def reject_achievement(
    achievement_id: str,
    payload: Optional[RejectRequest] = None,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    """Reject a submitted achievement; rejectionNote is required"""
    note = payload.rejection_note if payload else None
    reference = await service.reject(actor, achievement_id, note)
    return ok(StatusChange.model_validate(reference), "achievement rejected")


@router.post("/{achievement_id}/attachments", status_code=201)
async def upload_attachment(
    achievement_id: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    content = await file.read()
    view = await service.add_attachment(actor, achievement_id, file.filename, file.content_type, content)
    return ok(view, "attachment uploaded")


@router.get("/{achievement_id}/history")
async def achievement_history(
    achievement_id: str,
    actor: Actor = Depends(get_actor),
    service: AchievementService = Depends(get_achievement_service),
):
    entries = await service.history(actor, achievement_id)
    return ok([HistoryEntry.model_validate(e) for e in entries])
