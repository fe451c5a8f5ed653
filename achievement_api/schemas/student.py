# achievement_api/schemas/student.py
from datetime import datetime
from typing import Optional

from achievement_api.schemas.common import CamelModel


class StudentOut(CamelModel):
    id: str
    user_id: str
    student_number: str
    full_name: Optional[str] = None
    program: Optional[str] = None
    year: Optional[str] = None
    advisor_id: Optional[str] = None
    created_at: Optional[datetime] = None


class AdvisorOut(CamelModel):
    id: str
    user_id: str
    lecturer_number: Optional[str] = None
    full_name: Optional[str] = None
    department: Optional[str] = None
    created_at: Optional[datetime] = None


class UpdateAdvisorRequest(CamelModel):
    advisor_id: Optional[str] = None
