# achievement_api/schemas/report.py
from datetime import datetime
from typing import Dict, List

from pydantic import Field

from achievement_api.schemas.achievement import AchievementView
from achievement_api.schemas.common import CamelModel
from achievement_api.schemas.student import StudentOut


class MonthCount(CamelModel):
    month: str  # YYYY-MM
    count: int


class TopStudent(CamelModel):
    student_id: str
    student_number: str
    full_name: str
    verified_count: int


class StatisticsReport(CamelModel):
    scope: str  # all | advisees | self
    generated_at: datetime
    total: int = 0
    status_histogram: Dict[str, int] = Field(default_factory=dict)
    monthly_trend: List[MonthCount] = Field(default_factory=list)
    top_students: List[TopStudent] = Field(default_factory=list)
    type_distribution: Dict[str, int] = Field(default_factory=dict)
    event_year_distribution: Dict[str, int] = Field(default_factory=dict)
    competition_level_distribution: Dict[str, int] = Field(default_factory=dict)


class StudentReport(CamelModel):
    student: StudentOut
    achievements: List[AchievementView] = Field(default_factory=list)
    status_histogram: Dict[str, int] = Field(default_factory=dict)
    total_points: float = 0
    verified_points: float = 0
