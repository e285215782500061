import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON, Index
from sqlmodel import SQLModel, Field, Column
import enum

from utils.timeutils import utcnow


class IssueCategory(str, enum.Enum):
    sanitation = "sanitation"
    security = "security"
    water = "water"
    electricity = "electricity"
    elevator = "elevator"
    noise = "noise"
    parking = "parking"
    maintenance = "maintenance"
    cleaning = "cleaning"
    pest_control = "pest_control"
    landscaping = "landscaping"
    fire_safety = "fire_safety"
    other = "other"


class IssuePriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class IssueStatus(str, enum.Enum):
    new = "new"                   # reported, nobody assigned yet
    assigned = "assigned"
    in_progress = "in_progress"
    resolved = "resolved"
    closed = "closed"


class Issue(SQLModel, table=True):
    __table_args__ = (Index("ix_issue_location", "longitude", "latitude"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    title: str = Field(max_length=100, nullable=False)
    description: str = Field(max_length=1000, nullable=False)
    category: IssueCategory = Field(index=True, nullable=False)
    custom_category: Optional[str] = Field(default=None, max_length=50)
    priority: IssuePriority = Field(default=IssuePriority.medium, nullable=False)
    status: IssueStatus = Field(default=IssueStatus.new, index=True, nullable=False)

    longitude: Optional[float] = None
    latitude: Optional[float] = None
    # {"blockNumber", "apartmentNumber", "floorNumber", "area"}
    address: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    # [{"url", "publicId", "uploadedAt"}]
    images: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    videos: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    cost: float = Field(default=0, nullable=False)
    estimated_completion_time: Optional[float] = None  # hours
    internal_notes: Optional[str] = Field(default=None, max_length=500)

    reported_by: uuid.UUID = Field(foreign_key="user.id", index=True)
    assigned_to: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)
    assigned_by: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id")

    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    rating: Optional[int] = None
    rating_comment: Optional[str] = Field(default=None, max_length=500)
    rated_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow, index=True, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    @property
    def full_category(self) -> str:
        if self.custom_category:
            return self.custom_category
        return self.category.value if isinstance(self.category, IssueCategory) else str(self.category)
