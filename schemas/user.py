# schemas/user.py
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models.user import RoleEnum


class SignUpRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: RoleEnum = RoleEnum.student

    model_config = ConfigDict(use_enum_values=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: RoleEnum


class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: RoleEnum
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[UserOut] = None
