import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import Field, computed_field, field_validator
from models.issue import IssueCategory, IssuePriority, IssueStatus
from schemas.common import APIModel, Pagination
from schemas.assignment import AssignmentRead
from services import lifecycle


class Address(APIModel):
    block_number: Optional[str] = Field(default=None, max_length=10)
    apartment_number: Optional[str] = Field(default=None, max_length=20)
    floor_number: Optional[str] = Field(default=None, max_length=5)
    area: Optional[str] = Field(default=None, max_length=100)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class IssueCreate(APIModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    category: IssueCategory
    custom_category: Optional[str] = Field(default=None, max_length=50)
    priority: IssuePriority = IssuePriority.medium
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    address: Optional[Address] = None
    tags: List[str] = []
    cost: float = Field(default=0, ge=0)
    estimated_completion_time: Optional[float] = Field(default=None, ge=0)


# reporter, assignee, status and media are not editable through this schema
class IssueUpdate(APIModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    category: Optional[IssueCategory] = None
    custom_category: Optional[str] = Field(default=None, max_length=50)
    priority: Optional[IssuePriority] = None
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    address: Optional[Address] = None
    tags: Optional[List[str]] = None
    cost: Optional[float] = Field(default=None, ge=0)
    estimated_completion_time: Optional[float] = Field(default=None, ge=0)
    internal_notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("title", "description", "category", "priority", "cost", "tags")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("cannot be null")
        return value


class IssueStatusUpdate(APIModel):
    status: IssueStatus
    notes: Optional[str] = Field(default=None, max_length=500)


class AssignIssueRequest(APIModel):
    technician_id: uuid.UUID
    estimated_completion_time: Optional[float] = Field(default=None, ge=0)  # hours
    assignment_notes: Optional[str] = Field(default=None, max_length=500)
    priority: Optional[IssuePriority] = None
    is_urgent: bool = False


# Response schema
class IssueRead(APIModel):
    id: uuid.UUID
    title: str
    description: str
    category: IssueCategory
    custom_category: Optional[str] = None
    full_category: str
    priority: IssuePriority
    status: IssueStatus
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    address: Optional[dict] = None
    images: List[dict] = []
    videos: List[dict] = []
    tags: List[str] = []
    cost: float = 0
    estimated_completion_time: Optional[float] = None
    internal_notes: Optional[str] = None
    reported_by: uuid.UUID
    assigned_to: Optional[uuid.UUID] = None
    assigned_by: Optional[uuid.UUID] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    rating: Optional[int] = None
    rating_comment: Optional[str] = None
    rated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @computed_field(alias="isOverdue")
    @property
    def is_overdue(self) -> bool:
        return lifecycle.is_issue_overdue(self)

    @computed_field(alias="resolutionTime")
    @property
    def resolution_time(self) -> Optional[float]:
        return lifecycle.resolution_hours(self)


class IssueList(APIModel):
    issues: List[IssueRead]
    pagination: Pagination


class IssueDetail(APIModel):
    issue: IssueRead
    assignments: List[AssignmentRead] = []


class CategoryOption(APIModel):
    value: str
    label: str
