import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import SQLModel, Field, Column
import enum

from utils.timeutils import utcnow


class FeedbackCategory(str, enum.Enum):
    excellent_service = "excellent_service"
    good_service = "good_service"
    satisfactory = "satisfactory"
    poor_service = "poor_service"
    unprofessional = "unprofessional"
    delayed_resolution = "delayed_resolution"
    incomplete_work = "incomplete_work"
    communication_issues = "communication_issues"
    quality_issues = "quality_issues"
    cost_concerns = "cost_concerns"
    safety_concerns = "safety_concerns"
    cleanliness = "cleanliness"
    punctuality = "punctuality"
    knowledge = "knowledge"
    problem_solving = "problem_solving"
    follow_up = "follow_up"


class FeedbackStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    flagged = "flagged"


class Feedback(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("issue_id", "user_id", name="uq_feedback_issue_user"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    issue_id: uuid.UUID = Field(foreign_key="issue.id", index=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    assignment_id: Optional[uuid.UUID] = Field(default=None, foreign_key="assignment.id")
    technician_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)

    overall_rating: int = Field(nullable=False)
    quality_rating: Optional[int] = None
    speed_rating: Optional[int] = None
    communication_rating: Optional[int] = None
    professionalism_rating: Optional[int] = None

    comment: Optional[str] = Field(default=None, max_length=500)
    categories: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_anonymous: bool = Field(default=False, nullable=False)

    status: FeedbackStatus = Field(default=FeedbackStatus.pending, index=True, nullable=False)
    moderated_by: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id")
    moderated_at: Optional[datetime] = None
    moderation_notes: Optional[str] = Field(default=None, max_length=200)

    # {"text", "respondedBy", "respondedAt"}
    response: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    helpful_votes: int = Field(default=0, nullable=False)
    reported_count: int = Field(default=0, nullable=False)
    language: str = Field(default="en", nullable=False)

    created_at: datetime = Field(default_factory=utcnow, index=True, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    @property
    def detailed_ratings(self) -> List[int]:
        values = [
            self.quality_rating,
            self.speed_rating,
            self.communication_rating,
            self.professionalism_rating,
        ]
        return [value for value in values if value is not None]

    @property
    def average_detailed_rating(self) -> Optional[float]:
        values = self.detailed_ratings
        if not values:
            return None
        return round(sum(values) / len(values), 1)

    @property
    def sentiment(self) -> str:
        if self.overall_rating >= 4:
            return "positive"
        if self.overall_rating >= 3:
            return "neutral"
        return "negative"

    @property
    def weighted_rating(self) -> float:
        detailed = self.average_detailed_rating
        if detailed is None:
            return float(self.overall_rating)
        return round(self.overall_rating * 0.6 + detailed * 0.4, 1)
