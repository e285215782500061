import uuid
from collections import Counter, defaultdict
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func
from sqlmodel import Session, select

from core.database import get_session
from core.errors import PermissionDeniedError, ValidationError
from models.assignment import Assignment, AssignmentStatus
from models.audit_log import AuditAction
from models.issue import Issue, IssueStatus
from models.user import Specialization, User, UserRole
from routes.deps import require_assignment_access
from schemas.assignment import (
    AssignmentList,
    AssignmentRead,
    AssignmentUpdate,
    CompleteRequest,
    RejectRequest,
    TimeUpdate,
)
from schemas.common import Envelope, paginate
from schemas.user import UserRead
from services import lifecycle
from services.audit import log_action
from utils.security import committee_required, get_current_user, staff_required
from utils.timeutils import to_naive_utc, utcnow

router = APIRouter(tags=["Assignments"])

ANALYTICS_PERIODS = {"week": 7, "month": 30, "quarter": 90, "year": 365}

COMMITTEE_FIELDS = {
    "assignment_notes",
    "priority",
    "is_urgent",
    "estimated_start_time",
    "estimated_completion_time",
    "payment_amount",
    "quality_rating",
}
TECHNICIAN_FIELDS = {"technician_notes", "requires_follow_up", "follow_up_date", "follow_up_notes"}
DATETIME_FIELDS = {"estimated_start_time", "estimated_completion_time", "follow_up_date"}


def _require_assignee(assignment: Assignment, user: User, verb: str):
    if assignment.assigned_to != user.id:
        raise PermissionDeniedError(f"Only the assigned technician can {verb} this assignment")


def _linked_issue(session: Session, assignment: Assignment) -> Optional[Issue]:
    return session.get(Issue, assignment.issue_id)


def _respond(assignment: Assignment, message: str) -> dict:
    return {"success": True, "message": message, "data": AssignmentRead.model_validate(assignment)}


@router.get("/", response_model=Envelope[AssignmentList])
def list_assignments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[AssignmentStatus] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if current_user.role == UserRole.resident:
        raise PermissionDeniedError("Residents cannot view assignments")

    statement = select(Assignment)
    if current_user.role == UserRole.technician:
        statement = statement.where(Assignment.assigned_to == current_user.id)
    if status:
        statement = statement.where(Assignment.status == status)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    assignments = session.exec(
        statement.order_by(Assignment.assigned_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return {
        "success": True,
        "data": AssignmentList(
            assignments=[AssignmentRead.model_validate(item) for item in assignments],
            pagination=paginate(total, page, limit),
        ),
    }


@router.get("/technicians", response_model=Envelope[List[UserRead]])
def list_technicians(
    specialization: Optional[Specialization] = None,
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    technicians = session.exec(
        select(User).where(User.role == UserRole.technician).order_by(User.rating.desc(), User.name)
    ).all()
    if specialization:
        technicians = [tech for tech in technicians if specialization.value in (tech.specializations or [])]
    return {"success": True, "data": [UserRead.model_validate(tech) for tech in technicians]}


@router.get("/analytics")
def assignment_analytics(
    period: str = Query("month"),
    technician_id: Optional[uuid.UUID] = Query(None, alias="technicianId"),
    staff: User = Depends(staff_required),
    session: Session = Depends(get_session),
):
    if period not in ANALYTICS_PERIODS:
        raise ValidationError(f"Period must be one of: {', '.join(ANALYTICS_PERIODS)}")

    since = utcnow() - timedelta(days=ANALYTICS_PERIODS[period])
    statement = select(Assignment).where(Assignment.assigned_at >= since)
    if technician_id:
        statement = statement.where(Assignment.assigned_to == technician_id)
    assignments = session.exec(statement).all()

    completed = [item for item in assignments if item.status == AssignmentStatus.completed]
    durations = [d for d in (lifecycle.assignment_duration(item) for item in completed) if d is not None]

    per_technician = defaultdict(lambda: {"total": 0, "completed": 0, "timeSpent": 0})
    for item in assignments:
        stats = per_technician[str(item.assigned_to)]
        stats["total"] += 1
        stats["timeSpent"] += item.time_spent or 0
        if item.status == AssignmentStatus.completed:
            stats["completed"] += 1

    return {
        "success": True,
        "data": {
            "period": period,
            "totalAssignments": len(assignments),
            "completedAssignments": len(completed),
            "pendingAssignments": sum(1 for item in assignments if item.status == AssignmentStatus.pending),
            "completionRate": round(len(completed) / len(assignments) * 100, 1) if assignments else 0,
            "avgDuration": round(sum(durations) / len(durations), 1) if durations else None,
            "statusDistribution": dict(Counter(item.status.value for item in assignments)),
            "priorityDistribution": dict(Counter(item.priority.value for item in assignments)),
            "technicianStats": dict(per_technician),
        },
    }


@router.get("/{assignment_id}", response_model=Envelope[AssignmentRead])
def get_assignment(assignment: Assignment = Depends(require_assignment_access("read"))):
    return {"success": True, "data": AssignmentRead.model_validate(assignment)}


@router.put("/{assignment_id}", response_model=Envelope[AssignmentRead])
def update_assignment(
    payload: AssignmentUpdate,
    request: Request,
    assignment: Assignment = Depends(require_assignment_access("update")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    changes = payload.model_dump(exclude_unset=True)
    allowed = COMMITTEE_FIELDS if current_user.role == UserRole.committee else TECHNICIAN_FIELDS
    forbidden = sorted(set(changes) - allowed)
    if forbidden:
        raise PermissionDeniedError(f"Not allowed to change: {', '.join(forbidden)}")

    for field, value in changes.items():
        if field in DATETIME_FIELDS:
            value = to_naive_utc(value)
        setattr(assignment, field, value)
    assignment.updated_at = utcnow()
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    log_action(
        session,
        current_user.id,
        AuditAction.ASSIGNMENT_UPDATED,
        {"assignmentId": str(assignment.id), "fields": sorted(changes)},
        request=request,
    )
    return _respond(assignment, "Assignment updated successfully")


@router.post("/{assignment_id}/accept", response_model=Envelope[AssignmentRead])
def accept_assignment(
    request: Request,
    assignment: Assignment = Depends(require_assignment_access("update")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _require_assignee(assignment, current_user, "accept")
    now = utcnow()
    lifecycle.accept_assignment(assignment, now)

    issue = _linked_issue(session, assignment)
    if issue:
        lifecycle.set_issue_status(issue, IssueStatus.assigned, now)
        session.add(issue)
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    log_action(session, current_user.id, AuditAction.ASSIGNMENT_ACCEPTED, {"assignmentId": str(assignment.id)}, request=request)
    return _respond(assignment, "Assignment accepted successfully")


@router.post("/{assignment_id}/reject", response_model=Envelope[AssignmentRead])
def reject_assignment(
    payload: RejectRequest,
    request: Request,
    assignment: Assignment = Depends(require_assignment_access("update")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _require_assignee(assignment, current_user, "reject")
    lifecycle.reject_assignment(assignment, payload.reason)

    # hand the issue back to the committee queue
    issue = _linked_issue(session, assignment)
    if issue:
        lifecycle.set_issue_status(issue, IssueStatus.new)
        issue.assigned_to = None
        issue.assigned_by = None
        issue.assigned_at = None
        session.add(issue)
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    log_action(
        session,
        current_user.id,
        AuditAction.ASSIGNMENT_REJECTED,
        {"assignmentId": str(assignment.id), "reason": assignment.rejection_reason},
        request=request,
    )
    return _respond(assignment, "Assignment rejected")


@router.post("/{assignment_id}/start", response_model=Envelope[AssignmentRead])
def start_assignment(
    request: Request,
    assignment: Assignment = Depends(require_assignment_access("update")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _require_assignee(assignment, current_user, "start")
    now = utcnow()
    already_started = assignment.status == AssignmentStatus.in_progress
    lifecycle.start_assignment(assignment, now)

    issue = _linked_issue(session, assignment)
    if issue and not already_started:
        lifecycle.set_issue_status(issue, IssueStatus.in_progress, now)
        session.add(issue)
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    log_action(session, current_user.id, AuditAction.ASSIGNMENT_STARTED, {"assignmentId": str(assignment.id)}, request=request)
    return _respond(assignment, "Work started on assignment")


@router.post("/{assignment_id}/complete", response_model=Envelope[AssignmentRead])
def complete_assignment(
    payload: CompleteRequest,
    request: Request,
    assignment: Assignment = Depends(require_assignment_access("complete")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    now = utcnow()
    lifecycle.complete_assignment(
        assignment,
        notes=payload.completion_notes,
        time_spent=payload.time_spent,
        materials=payload.materials_used,
        now=now,
    )

    issue = _linked_issue(session, assignment)
    if issue:
        lifecycle.set_issue_status(issue, IssueStatus.resolved, now)
        session.add(issue)
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    log_action(
        session,
        current_user.id,
        AuditAction.ASSIGNMENT_COMPLETED,
        {"assignmentId": str(assignment.id), "timeSpent": assignment.time_spent},
        request=request,
    )
    return _respond(assignment, "Assignment completed successfully")


@router.put("/{assignment_id}/time", response_model=Envelope[AssignmentRead])
def update_time_spent(
    payload: TimeUpdate,
    request: Request,
    assignment: Assignment = Depends(require_assignment_access("update")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    assignment.time_spent = lifecycle.validate_time_spent(payload.time_spent)
    assignment.updated_at = utcnow()
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    log_action(
        session,
        current_user.id,
        AuditAction.ASSIGNMENT_TIME_UPDATED,
        {"assignmentId": str(assignment.id), "timeSpent": assignment.time_spent},
        request=request,
    )
    return _respond(assignment, "Time spent updated successfully")
