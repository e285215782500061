import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column
import enum

from models.issue import IssuePriority
from utils.timeutils import utcnow


class AssignmentStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    in_progress = "in_progress"
    completed = "completed"
    rejected = "rejected"


class Assignment(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    issue_id: uuid.UUID = Field(foreign_key="issue.id", index=True)
    assigned_to: uuid.UUID = Field(foreign_key="user.id", index=True)
    assigned_by: uuid.UUID = Field(foreign_key="user.id")
    status: AssignmentStatus = Field(default=AssignmentStatus.pending, index=True, nullable=False)
    priority: IssuePriority = Field(default=IssuePriority.medium, nullable=False)
    is_urgent: bool = Field(default=False, nullable=False)

    assigned_at: datetime = Field(default_factory=utcnow, index=True, nullable=False)
    estimated_start_time: Optional[datetime] = None
    estimated_completion_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_completion_time: Optional[datetime] = None

    assignment_notes: Optional[str] = Field(default=None, max_length=500)
    technician_notes: Optional[str] = Field(default=None, max_length=500)
    completion_notes: Optional[str] = Field(default=None, max_length=500)
    rejection_reason: Optional[str] = Field(default=None, max_length=200)
    rejected_at: Optional[datetime] = None

    # [{"name", "quantity", "unit", "cost"}]
    materials_used: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    time_spent: int = Field(default=0, nullable=False)  # minutes
    payment_amount: float = Field(default=0, nullable=False)
    quality_rating: Optional[int] = None

    requires_follow_up: bool = Field(default=False, nullable=False)
    follow_up_date: Optional[datetime] = None
    follow_up_notes: Optional[str] = Field(default=None, max_length=300)

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
