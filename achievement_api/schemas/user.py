# achievement_api/schemas/user.py
from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from achievement_api.schemas.common import CamelModel


class StudentProfileIn(CamelModel):
    student_number: str = Field(..., min_length=1, max_length=20)
    program: Optional[str] = None
    year: Optional[str] = None
    advisor_id: Optional[str] = None


class AdvisorProfileIn(CamelModel):
    lecturer_number: Optional[str] = Field(None, max_length=20)
    department: Optional[str] = None


class UserCreate(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=100)
    role: str
    student_profile: Optional[StudentProfileIn] = None
    advisor_profile: Optional[AdvisorProfileIn] = None


class UserUpdate(CamelModel):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class RoleChange(CamelModel):
    role: str


class UserOut(CamelModel):
    id: str
    username: str
    email: str
    full_name: str
    role: str
    is_active: bool
    student_profile_id: Optional[str] = None
    advisor_profile_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
