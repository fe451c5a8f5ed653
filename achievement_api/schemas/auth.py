# achievement_api/schemas/auth.py
from typing import List, Optional

from pydantic import Field

from achievement_api.schemas.common import CamelModel


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class UserSummary(CamelModel):
    id: str
    username: str
    full_name: str
    role: str
    permissions: List[str] = Field(default_factory=list)


class LoginResponse(CamelModel):
    token: str
    refresh_token: str
    user: UserSummary


class RefreshResponse(CamelModel):
    token: str
