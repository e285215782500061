import uuid
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import Field
from models.feedback import FeedbackCategory, FeedbackStatus
from schemas.common import APIModel
from schemas.user import UserRead


class FeedbackCreate(APIModel):
    issue_id: uuid.UUID
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=500)
    categories: List[FeedbackCategory] = []
    quality_rating: Optional[int] = Field(default=None, ge=1, le=5)
    speed_rating: Optional[int] = Field(default=None, ge=1, le=5)
    communication_rating: Optional[int] = Field(default=None, ge=1, le=5)
    professionalism_rating: Optional[int] = Field(default=None, ge=1, le=5)
    is_anonymous: bool = False


class ModerateRequest(APIModel):
    action: Literal["approve", "reject", "flag"]
    notes: Optional[str] = Field(default=None, max_length=200)


class RespondRequest(APIModel):
    text: str = Field(min_length=1, max_length=300)


# Response schema
class FeedbackRead(APIModel):
    id: uuid.UUID
    issue_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    assignment_id: Optional[uuid.UUID] = None
    technician_id: Optional[uuid.UUID] = None
    overall_rating: int
    quality_rating: Optional[int] = None
    speed_rating: Optional[int] = None
    communication_rating: Optional[int] = None
    professionalism_rating: Optional[int] = None
    average_detailed_rating: Optional[float] = None
    weighted_rating: float
    sentiment: str
    comment: Optional[str] = None
    categories: List[str] = []
    is_anonymous: bool = False
    status: FeedbackStatus
    moderation_notes: Optional[str] = None
    moderated_at: Optional[datetime] = None
    response: Optional[dict] = None
    helpful_votes: int = 0
    reported_count: int = 0
    created_at: datetime


class RatingSummary(APIModel):
    average_rating: float
    total_ratings: int
    distribution: dict


class TechnicianRatings(APIModel):
    technician: UserRead
    summary: RatingSummary
    recent_feedback: List[FeedbackRead] = []
