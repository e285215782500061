import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column
import enum

from utils.timeutils import utcnow


class AuditAction(str, enum.Enum):
    # Account actions
    USER_REGISTER = "USER_REGISTER"
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    ACCOUNT_DELETE = "ACCOUNT_DELETE"

    # Issue actions
    ISSUE_CREATED = "ISSUE_CREATED"
    ISSUE_UPDATED = "ISSUE_UPDATED"
    ISSUE_DELETED = "ISSUE_DELETED"
    ISSUE_ASSIGNED = "ISSUE_ASSIGNED"
    ISSUE_STATUS_UPDATED = "ISSUE_STATUS_UPDATED"

    # Assignment actions
    ASSIGNMENT_ACCEPTED = "ASSIGNMENT_ACCEPTED"
    ASSIGNMENT_REJECTED = "ASSIGNMENT_REJECTED"
    ASSIGNMENT_STARTED = "ASSIGNMENT_STARTED"
    ASSIGNMENT_COMPLETED = "ASSIGNMENT_COMPLETED"
    ASSIGNMENT_UPDATED = "ASSIGNMENT_UPDATED"
    ASSIGNMENT_TIME_UPDATED = "ASSIGNMENT_TIME_UPDATED"

    # Feedback actions
    FEEDBACK_SUBMITTED = "FEEDBACK_SUBMITTED"
    FEEDBACK_MODERATED = "FEEDBACK_MODERATED"


class AuditStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


class AuditLog(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)
    # no foreign key: rows outlive the user and failed logins have no user
    user_id: Optional[uuid.UUID] = Field(default=None, index=True)
    action: str = Field(index=True, nullable=False)
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: AuditStatus = Field(default=AuditStatus.SUCCESS, nullable=False)
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, index=True, nullable=False)
