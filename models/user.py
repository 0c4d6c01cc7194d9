# models/user.py
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field
import enum

from models.common import UTCDateTime


class RoleEnum(str, enum.Enum):
    teacher = "teacher"
    student = "student"


class User(BaseModel):
    """Profile of the signed-in person. Read-only for the whole session."""
    id: str = Field(alias="_id")
    name: str
    email: EmailStr
    role: RoleEnum
    avatar_url: Optional[str] = None
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        frozen=True
    )

    @property
    def is_teacher(self) -> bool:
        return self.role == RoleEnum.teacher

    @property
    def is_student(self) -> bool:
        return self.role == RoleEnum.student


class Session(BaseModel):
    access_token: str
    user_id: str
    session_id: str
    expires_at: datetime
