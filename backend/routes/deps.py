import uuid
from typing import Optional

from fastapi import Depends
from sqlmodel import Session, select

from core.database import get_session
from core.errors import NotFoundError, PermissionDeniedError
from models.assignment import Assignment
from models.issue import Issue
from models.user import User
from services.access import can_access_assignment, can_access_issue
from utils.security import actor_for, get_current_user


def parse_uuid(value: str, label: str = "Resource") -> uuid.UUID:
    # a malformed id is reported the same way as a missing record
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(f"{label} not found")


def get_issue_or_404(session: Session, issue_id) -> Issue:
    issue = session.get(Issue, parse_uuid(issue_id, "Issue"))
    if not issue:
        raise NotFoundError("Issue not found")
    return issue


def get_assignment_or_404(session: Session, assignment_id) -> Assignment:
    assignment = session.get(Assignment, parse_uuid(assignment_id, "Assignment"))
    if not assignment:
        raise NotFoundError("Assignment not found")
    return assignment


def current_assignment(session: Session, issue_id: uuid.UUID) -> Optional[Assignment]:
    statement = (
        select(Assignment)
        .where(Assignment.issue_id == issue_id)
        .order_by(Assignment.assigned_at.desc(), Assignment.created_at.desc())
    )
    return session.exec(statement).first()


def require_issue_access(action: str):
    """Load the issue from the path (404 first), then apply the issue access table (403)."""

    def dependency(
        issue_id: str,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user),
    ) -> Issue:
        issue = get_issue_or_404(session, issue_id)
        if not can_access_issue(actor_for(current_user), issue.reported_by, issue.status, action):
            raise PermissionDeniedError(f"Not authorized to {action} this issue")
        return issue

    return dependency


def require_assignment_access(action: str):
    def dependency(
        assignment_id: str,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user),
    ) -> Assignment:
        assignment = get_assignment_or_404(session, assignment_id)
        if not can_access_assignment(actor_for(current_user), assignment.assigned_to, action):
            raise PermissionDeniedError(f"Not authorized to {action} this assignment")
        return assignment

    return dependency
