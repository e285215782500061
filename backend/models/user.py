import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column
import enum

from utils.timeutils import utcnow


class UserRole(str, enum.Enum):
    resident = "resident"
    committee = "committee"
    technician = "technician"


class Specialization(str, enum.Enum):
    plumbing = "plumbing"
    electrical = "electrical"
    carpentry = "carpentry"
    cleaning = "cleaning"
    security = "security"
    elevator = "elevator"
    general = "general"


class Permission(str, enum.Enum):
    assign_issues = "assign_issues"
    view_reports = "view_reports"
    manage_users = "manage_users"
    manage_technicians = "manage_technicians"
    view_analytics = "view_analytics"


class Language(str, enum.Enum):
    en = "en"
    hi = "hi"


class User(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    name: str = Field(max_length=50, nullable=False)
    email: str = Field(index=True, unique=True, nullable=False)
    password_hash: str = Field(nullable=False)
    role: UserRole = Field(default=UserRole.resident, index=True, nullable=False)

    phone_number: Optional[str] = Field(default=None, max_length=10)
    apartment_number: Optional[str] = Field(default=None, max_length=20)
    block_number: Optional[str] = Field(default=None, max_length=10)
    profile_picture: Optional[str] = None

    # technicians only
    specializations: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    # committee only
    permissions: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # running mean over rating_scores
    rating: float = Field(default=0.0, nullable=False)
    rating_scores: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    total_ratings: int = Field(default=0, nullable=False)

    language: Language = Field(default=Language.en, nullable=False)
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
