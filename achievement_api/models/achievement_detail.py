# achievement_api/models/achievement_detail.py
from beanie import Document, Indexed
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from achievement_api.utils.dates import utcnow


class Period(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None


class AchievementDetails(BaseModel):
    # Competition
    competition_name: Optional[str] = None
    competition_level: Optional[str] = None
    rank: Optional[int] = None
    medal_type: Optional[str] = None

    # Publication
    publication_type: Optional[str] = None
    publication_title: Optional[str] = None
    authors: Optional[List[str]] = None
    publisher: Optional[str] = None
    issn: Optional[str] = None

    # Organization
    organization_name: Optional[str] = None
    position: Optional[str] = None
    period: Optional[Period] = None

    # Certification
    certification_name: Optional[str] = None
    issued_by: Optional[str] = None
    certification_number: Optional[str] = None
    valid_until: Optional[str] = None  # YYYY-MM-DD

    # Common
    event_date: Optional[str] = None  # YYYY-MM-DD
    location: Optional[str] = None
    organizer: Optional[str] = None
    score: Optional[float] = None

    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class Attachment(BaseModel):
    file_name: str
    file_url: str
    file_type: str
    uploaded_at: datetime = Field(default_factory=utcnow)


class AchievementContent(BaseModel):
    """Fields a caller supplies when creating a detail document."""

    student_id: str
    type: str
    title: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    points: float = 0
    details: AchievementDetails = Field(default_factory=AchievementDetails)


class AchievementDetail(Document):
    student_id: Indexed(str)  # students.id, must match the reference

    type: Indexed(str)
    title: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    points: float = 0
    details: AchievementDetails = Field(default_factory=AchievementDetails)
    attachments: Optional[List[Attachment]] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    class Settings:
        name = "achievements"
        indexes = ["deleted_at"]
