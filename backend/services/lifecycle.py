"""
Issue and assignment state machines.

Issue: new -> assigned -> in_progress -> resolved -> closed. Setting a status
stamps the timestamp that belongs to the target state, whatever the current
state is, so jumping straight to ``resolved`` still records ``resolved_at``.

Assignment: pending -> accepted -> in_progress -> completed, or
pending -> rejected.
"""
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional

from core.errors import ValidationError
from models.assignment import Assignment, AssignmentStatus
from models.issue import Issue, IssueStatus
from utils.timeutils import utcnow

ISSUE_STATUS_STAMPS = {
    IssueStatus.assigned: "assigned_at",
    IssueStatus.in_progress: "started_at",
    IssueStatus.resolved: "resolved_at",
    IssueStatus.closed: "closed_at",
}

ISSUE_TERMINAL = {IssueStatus.resolved, IssueStatus.closed}
ASSIGNMENT_TERMINAL = {AssignmentStatus.completed, AssignmentStatus.rejected}

MAX_REJECTION_REASON = 200
MAX_NOTES = 500


# --- Issue ---

def set_issue_status(issue: Issue, status: IssueStatus, now: Optional[datetime] = None) -> Issue:
    now = now or utcnow()
    status = IssueStatus(status)
    issue.status = status
    stamp = ISSUE_STATUS_STAMPS.get(status)
    if stamp:
        setattr(issue, stamp, now)
    issue.updated_at = now
    return issue


def is_issue_overdue(issue: Issue, now: Optional[datetime] = None) -> bool:
    if IssueStatus(issue.status) in ISSUE_TERMINAL:
        return False
    if issue.estimated_completion_time is None or issue.assigned_at is None:
        return False
    due = issue.assigned_at + timedelta(hours=issue.estimated_completion_time)
    return (now or utcnow()) > due


def resolution_hours(issue: Issue) -> Optional[float]:
    if issue.resolved_at is None or issue.created_at is None:
        return None
    return round((issue.resolved_at - issue.created_at).total_seconds() / 3600, 2)


# --- Assignment ---

def _require_status(assignment: Assignment, allowed: Iterable[AssignmentStatus], verb: str):
    current = AssignmentStatus(assignment.status)
    if current not in set(allowed):
        raise ValidationError(f"Assignment cannot be {verb} in its current status ({current.value})")


def accept_assignment(assignment: Assignment, now: Optional[datetime] = None) -> Assignment:
    _require_status(assignment, [AssignmentStatus.pending], "accepted")
    now = now or utcnow()
    assignment.status = AssignmentStatus.accepted
    if assignment.actual_start_time is None:
        assignment.actual_start_time = now
    assignment.updated_at = now
    return assignment


def start_assignment(assignment: Assignment, now: Optional[datetime] = None) -> Assignment:
    _require_status(assignment, [AssignmentStatus.accepted, AssignmentStatus.in_progress], "started")
    now = now or utcnow()
    assignment.status = AssignmentStatus.in_progress
    if assignment.actual_start_time is None:
        assignment.actual_start_time = now
    assignment.updated_at = now
    return assignment


def reject_assignment(assignment: Assignment, reason: str, now: Optional[datetime] = None) -> Assignment:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required")
    if len(reason) > MAX_REJECTION_REASON:
        raise ValidationError(f"Rejection reason cannot exceed {MAX_REJECTION_REASON} characters")
    _require_status(assignment, [AssignmentStatus.pending], "rejected")

    now = now or utcnow()
    assignment.status = AssignmentStatus.rejected
    assignment.rejection_reason = reason
    assignment.rejected_at = now
    assignment.updated_at = now
    return assignment


def complete_assignment(
    assignment: Assignment,
    notes: Optional[str] = None,
    time_spent: Optional[int] = None,
    materials: Optional[List[Any]] = None,
    now: Optional[datetime] = None,
) -> Assignment:
    current = AssignmentStatus(assignment.status)
    if current in ASSIGNMENT_TERMINAL:
        raise ValidationError(f"Assignment is already {current.value}")
    if notes is not None and len(notes) > MAX_NOTES:
        raise ValidationError(f"Completion notes cannot exceed {MAX_NOTES} characters")
    if time_spent is not None:
        validate_time_spent(time_spent)
    normalized = normalize_materials(materials or [])

    now = now or utcnow()
    assignment.status = AssignmentStatus.completed
    assignment.actual_completion_time = now
    if notes is not None:
        assignment.completion_notes = notes
    if time_spent is not None:
        assignment.time_spent = time_spent
    if normalized:
        assignment.materials_used = normalized
    assignment.updated_at = now
    return assignment


def validate_time_spent(minutes) -> int:
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
        raise ValidationError("Time spent must be a non-negative number of minutes")
    return minutes


def normalize_materials(items: List[Any]) -> List[dict]:
    """Accept material dicts or bare names; a bare name means one piece at no cost."""
    materials = []
    for item in items:
        if isinstance(item, str):
            item = {"name": item, "quantity": 1, "unit": "piece", "cost": 0}
        elif hasattr(item, "model_dump"):
            item = item.model_dump()
        elif not isinstance(item, dict):
            raise ValidationError("Each material must be a name or an object")

        name = str(item.get("name") or "").strip()
        unit = str(item.get("unit") or "piece").strip()
        quantity = item.get("quantity", 1)
        cost = item.get("cost", 0)

        if not name or len(name) > 50:
            raise ValidationError("Material name is required and cannot exceed 50 characters")
        if len(unit) > 20:
            raise ValidationError("Material unit cannot exceed 20 characters")
        for label, value in (("quantity", quantity), ("cost", cost)):
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ValidationError(f"Material {label} must be a non-negative number")

        materials.append({"name": name, "quantity": quantity, "unit": unit, "cost": cost})
    return materials


def _minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 60)


def assignment_duration(assignment: Assignment) -> Optional[int]:
    return _minutes_between(assignment.actual_start_time, assignment.actual_completion_time)


def estimated_duration(assignment: Assignment) -> Optional[int]:
    return _minutes_between(assignment.estimated_start_time, assignment.estimated_completion_time)


def assignment_efficiency(assignment: Assignment) -> Optional[float]:
    actual = assignment_duration(assignment)
    estimated = estimated_duration(assignment)
    if not actual or estimated is None:
        return None
    return round(estimated / actual * 100, 2)


def is_assignment_overdue(assignment: Assignment, now: Optional[datetime] = None) -> bool:
    if AssignmentStatus(assignment.status) in ASSIGNMENT_TERMINAL:
        return False
    if assignment.estimated_completion_time is None:
        return False
    return (now or utcnow()) > assignment.estimated_completion_time
