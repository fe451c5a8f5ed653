# achievement_api/schemas/achievement.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from achievement_api.models.achievement import AchievementStatus
from achievement_api.schemas.common import CamelModel


class PeriodIn(CamelModel):
    start: Optional[str] = None
    end: Optional[str] = None


class AchievementDetailsIn(CamelModel):
    competition_name: Optional[str] = None
    competition_level: Optional[str] = None
    rank: Optional[int] = None
    medal_type: Optional[str] = None

    publication_type: Optional[str] = None
    publication_title: Optional[str] = None
    authors: Optional[List[str]] = None
    publisher: Optional[str] = None
    issn: Optional[str] = None

    organization_name: Optional[str] = None
    position: Optional[str] = None
    period: Optional[PeriodIn] = None

    certification_name: Optional[str] = None
    issued_by: Optional[str] = None
    certification_number: Optional[str] = None
    valid_until: Optional[str] = None

    event_date: Optional[str] = None
    location: Optional[str] = None
    organizer: Optional[str] = None
    score: Optional[float] = None

    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class AchievementCreate(CamelModel):
    type: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    points: float = Field(0, ge=0)
    details: AchievementDetailsIn = Field(default_factory=AchievementDetailsIn)
    target_student_id: Optional[str] = None

    @field_validator("type", "title")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class AchievementUpdate(CamelModel):
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    points: Optional[float] = Field(None, ge=0)
    details: Optional[AchievementDetailsIn] = None


class RejectRequest(CamelModel):
    rejection_note: Optional[str] = None


class AttachmentOut(CamelModel):
    file_name: str
    file_url: str
    file_type: str
    uploaded_at: datetime


class AchievementView(CamelModel):
    """A reference joined with its detail document."""

    id: str
    detail_id: str
    student_id: str
    status: AchievementStatus

    type: str
    title: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    points: float = 0
    details: AchievementDetailsIn = Field(default_factory=AchievementDetailsIn)
    attachments: List[AttachmentOut] = Field(default_factory=list)

    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_note: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class AchievementCreated(CamelModel):
    id: str
    detail_id: str
    status: AchievementStatus


class StatusChange(CamelModel):
    id: str
    status: AchievementStatus
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_note: Optional[str] = None
    updated_at: datetime


class HistoryEntry(CamelModel):
    id: str
    action: str
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[str] = None
    note: Optional[str] = None
    changed_at: datetime
