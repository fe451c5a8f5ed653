# achievement_api/models/achievement.py
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, String, Text

from achievement_api.core.database import Base
from achievement_api.models.user import new_id
from achievement_api.utils.dates import utcnow


class AchievementStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"


# legal edges of the workflow; verified and rejected are terminal
TRANSITIONS = {
    AchievementStatus.DRAFT: {AchievementStatus.SUBMITTED},
    AchievementStatus.SUBMITTED: {AchievementStatus.VERIFIED, AchievementStatus.REJECTED},
    AchievementStatus.VERIFIED: set(),
    AchievementStatus.REJECTED: set(),
}


def status_column():
    return SQLEnum(
        AchievementStatus,
        name="achievement_status",
        native_enum=False,
        length=20,
        values_callable=lambda e: [m.value for m in e],
    )


class AchievementReference(Base):
    __tablename__ = "achievement_references"

    id = Column(String(36), primary_key=True, default=new_id)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    detail_id = Column(String(24), nullable=False, unique=True)
    status = Column(status_column(), nullable=False, default=AchievementStatus.DRAFT, index=True)

    submitted_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by = Column(String(36), ForeignKey("advisors.id"), nullable=True)
    rejection_note = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<AchievementReference {self.id} {self.status}>"


class AchievementStatusHistory(Base):
    __tablename__ = "achievement_status_history"

    id = Column(String(36), primary_key=True, default=new_id)
    achievement_id = Column(String(36), ForeignKey("achievement_references.id"), nullable=False, index=True)
    action = Column(String(20), nullable=False)  # create | submit | verify | reject | delete
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    changed_by = Column(String(36), nullable=True)  # user id
    note = Column(Text, nullable=True)
    changed_at = Column(DateTime, nullable=False, default=utcnow)
