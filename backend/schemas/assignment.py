import uuid
from datetime import datetime
from typing import List, Optional, Union
from pydantic import Field, computed_field
from models.assignment import AssignmentStatus
from models.issue import IssuePriority
from schemas.common import APIModel, Pagination
from services import lifecycle


class MaterialItem(APIModel):
    name: str
    quantity: float = 1
    unit: str = "piece"
    cost: float = 0


class AssignmentUpdate(APIModel):
    assignment_notes: Optional[str] = Field(default=None, max_length=500)
    technician_notes: Optional[str] = Field(default=None, max_length=500)
    priority: Optional[IssuePriority] = None
    is_urgent: Optional[bool] = None
    estimated_start_time: Optional[datetime] = None
    estimated_completion_time: Optional[datetime] = None
    payment_amount: Optional[float] = Field(default=None, ge=0)
    quality_rating: Optional[int] = Field(default=None, ge=1, le=5)
    requires_follow_up: Optional[bool] = None
    follow_up_date: Optional[datetime] = None
    follow_up_notes: Optional[str] = Field(default=None, max_length=300)


class RejectRequest(APIModel):
    reason: str = ""


class CompleteRequest(APIModel):
    completion_notes: Optional[str] = None
    time_spent: Optional[int] = None  # minutes
    materials_used: List[Union[MaterialItem, str]] = []


class TimeUpdate(APIModel):
    time_spent: int  # minutes


# Response schema
class AssignmentRead(APIModel):
    id: uuid.UUID
    issue_id: uuid.UUID
    assigned_to: uuid.UUID
    assigned_by: uuid.UUID
    status: AssignmentStatus
    priority: IssuePriority
    is_urgent: bool = False
    assigned_at: datetime
    estimated_start_time: Optional[datetime] = None
    estimated_completion_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_completion_time: Optional[datetime] = None
    assignment_notes: Optional[str] = None
    technician_notes: Optional[str] = None
    completion_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None
    materials_used: List[dict] = []
    time_spent: int = 0
    payment_amount: float = 0
    quality_rating: Optional[int] = None
    requires_follow_up: bool = False
    follow_up_date: Optional[datetime] = None
    follow_up_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @computed_field(alias="duration")
    @property
    def duration(self) -> Optional[int]:
        return lifecycle.assignment_duration(self)

    @computed_field(alias="estimatedDuration")
    @property
    def estimated_duration(self) -> Optional[int]:
        return lifecycle.estimated_duration(self)

    @computed_field(alias="efficiency")
    @property
    def efficiency(self) -> Optional[float]:
        return lifecycle.assignment_efficiency(self)

    @computed_field(alias="isOverdue")
    @property
    def is_overdue(self) -> bool:
        return lifecycle.is_assignment_overdue(self)


class AssignmentList(APIModel):
    assignments: List[AssignmentRead]
    pagination: Pagination
