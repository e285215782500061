import re
import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import EmailStr, Field, field_validator
from models.user import Language, Permission, Specialization, UserRole
from schemas.common import APIModel

PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")


def validate_password_strength(password: str) -> str:
    if not PASSWORD_RE.match(password or ""):
        raise ValueError(
            "Password must be at least 8 characters with uppercase, lowercase, number and special character (@$!%*?&)"
        )
    return password


class RegisterRequest(APIModel):
    name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str
    role: UserRole = UserRole.resident
    phone_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    apartment_number: Optional[str] = Field(default=None, max_length=20)
    block_number: Optional[str] = Field(default=None, max_length=10)
    specializations: List[Specialization] = []
    permissions: List[Permission] = []

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return validate_password_strength(value)


class LoginRequest(APIModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.strip().lower()


class PasswordChange(APIModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return validate_password_strength(value)


class LanguageUpdate(APIModel):
    language: Language


# Response schema
class UserRead(APIModel):
    id: uuid.UUID
    name: str
    email: str
    role: UserRole
    phone_number: Optional[str] = None
    apartment_number: Optional[str] = None
    block_number: Optional[str] = None
    profile_picture: Optional[str] = None
    specializations: List[str] = []
    permissions: List[str] = []
    rating: float = 0.0
    total_ratings: int = 0
    language: Language = Language.en
    last_login: Optional[datetime] = None
    created_at: datetime


class AuthResult(APIModel):
    user: UserRead
    token: str
