import json
import logging
import os
import uuid
from collections import Counter
from datetime import timedelta
from typing import List, Optional

import aiofiles
import pydantic
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from core.config import MAX_UPLOAD_BYTES, MAX_UPLOAD_FILES, UPLOAD_DIR
from core.database import get_session
from core.errors import NotFoundError, PermissionDeniedError, ValidationError, validation_message
from models.assignment import Assignment, AssignmentStatus
from models.audit_log import AuditAction
from models.feedback import Feedback
from models.issue import Issue, IssueCategory, IssuePriority, IssueStatus
from models.user import User, UserRole
from routes.deps import current_assignment, require_issue_access
from schemas.assignment import AssignmentRead
from schemas.common import Envelope, paginate
from schemas.issue import (
    Address,
    AssignIssueRequest,
    CategoryOption,
    IssueCreate,
    IssueDetail,
    IssueList,
    IssueRead,
    IssueStatusUpdate,
    IssueUpdate,
)
from services import lifecycle
from services.audit import log_action
from utils.security import committee_required, get_current_user, staff_required
from utils.timeutils import utcnow

router = APIRouter(tags=["Issues"])
logger = logging.getLogger(__name__)

ISSUE_UPLOAD_DIR = os.path.join(UPLOAD_DIR, "issues")
ALLOWED_MEDIA_PREFIXES = ("image/", "video/")

ANALYTICS_PERIODS = {"week": 7, "month": 30, "quarter": 90, "year": 365}


def _label(value: str) -> str:
    return value.replace("_", " ").title()


def _parse_json_field(raw: Optional[str], label: str):
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError(f"{label} must be valid JSON")


def _parse_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    if raw.lstrip().startswith("["):
        tags = _parse_json_field(raw, "Tags")
    else:
        tags = raw.split(",")
    tags = [str(tag).strip() for tag in tags if str(tag).strip()]
    if any(len(tag) > 20 for tag in tags):
        raise ValidationError("Tag cannot exceed 20 characters")
    return tags


async def save_media(files: List[UploadFile]) -> tuple:
    images, videos = [], []
    if len(files) > MAX_UPLOAD_FILES:
        raise ValidationError(f"Cannot upload more than {MAX_UPLOAD_FILES} files")

    os.makedirs(ISSUE_UPLOAD_DIR, exist_ok=True)
    for file in files:
        content_type = file.content_type or ""
        if not content_type.startswith(ALLOWED_MEDIA_PREFIXES):
            raise ValidationError(f"Invalid file type: {content_type}. Only images and videos are allowed.")

        content = await file.read()
        if len(content) > MAX_UPLOAD_BYTES:
            raise ValidationError(f"File {file.filename} exceeds the 2MB limit")

        public_id = str(uuid.uuid4())
        file_name = f"{public_id}{os.path.splitext(file.filename or '')[1]}"
        file_path = os.path.join(ISSUE_UPLOAD_DIR, file_name)
        async with aiofiles.open(file_path, "wb") as out_file:
            await out_file.write(content)

        item = {
            "url": f"/uploads/issues/{file_name}",
            "publicId": public_id,
            "uploadedAt": utcnow().isoformat(),
        }
        (videos if content_type.startswith("video/") else images).append(item)
    return images, videos


def remove_media(issue: Issue):
    for item in list(issue.images or []) + list(issue.videos or []):
        path = os.path.join(ISSUE_UPLOAD_DIR, os.path.basename(item.get("url") or ""))
        if os.path.isfile(path):
            try:
                os.remove(path)
            except OSError as e:
                logger.warning("Could not remove media file %s: %s", path, e)


def _filtered(statement, status, category, priority, search):
    if status:
        statement = statement.where(Issue.status == status)
    if category:
        statement = statement.where(Issue.category == category)
    if priority:
        statement = statement.where(Issue.priority == priority)
    if search:
        pattern = f"%{search}%"
        statement = statement.where(or_(col(Issue.title).ilike(pattern), col(Issue.description).ilike(pattern)))
    return statement


def _page(session: Session, statement, page: int, limit: int) -> IssueList:
    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    issues = session.exec(
        statement.order_by(Issue.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return IssueList(issues=[IssueRead.model_validate(issue) for issue in issues], pagination=paginate(total, page, limit))


@router.post("/", status_code=201, response_model=Envelope[IssueRead])
async def create_issue(
    request: Request,
    title: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    custom_category: Optional[str] = Form(None, alias="customCategory"),
    priority: Optional[str] = Form(None),
    longitude: Optional[float] = Form(None),
    latitude: Optional[float] = Form(None),
    address: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    cost: Optional[float] = Form(None),
    estimated_completion_time: Optional[float] = Form(None, alias="estimatedCompletionTime"),
    media: List[UploadFile] = File(default=[]),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    values = {
        "title": title,
        "description": description,
        "category": category,
        "custom_category": custom_category or None,
        "longitude": longitude,
        "latitude": latitude,
        "address": _parse_json_field(address, "Address"),
        "tags": _parse_tags(tags),
        "estimated_completion_time": estimated_completion_time,
    }
    if priority:
        values["priority"] = priority
    if cost is not None:
        values["cost"] = cost
    try:
        payload = IssueCreate(**values)
    except pydantic.ValidationError as e:
        raise ValidationError(validation_message(e))

    images, videos = await save_media([file for file in media if file.filename])

    issue = Issue(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        custom_category=payload.custom_category,
        priority=payload.priority,
        longitude=payload.longitude,
        latitude=payload.latitude,
        address=payload.address.to_document() if payload.address else None,
        tags=payload.tags,
        cost=payload.cost,
        estimated_completion_time=payload.estimated_completion_time,
        images=images,
        videos=videos,
        reported_by=current_user.id,
        status=IssueStatus.new,
    )
    session.add(issue)
    session.commit()
    session.refresh(issue)

    log_action(
        session,
        current_user.id,
        AuditAction.ISSUE_CREATED,
        {"issueId": str(issue.id), "title": issue.title, "category": issue.category.value},
        request=request,
    )
    return {"success": True, "message": "Issue created successfully", "data": IssueRead.model_validate(issue)}


@router.get("/", response_model=Envelope[IssueList])
def list_issues(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[IssueStatus] = None,
    category: Optional[IssueCategory] = None,
    priority: Optional[IssuePriority] = None,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """
    Residents see the issues they reported, committee members see every issue.
    Technicians work from their assignments instead.
    """
    if current_user.role == UserRole.technician:
        raise PermissionDeniedError("Technicians should use the assignments list")

    statement = _filtered(select(Issue), status, category, priority, search)
    if current_user.role == UserRole.resident:
        statement = statement.where(Issue.reported_by == current_user.id)
    return {"success": True, "data": _page(session, statement, page, limit)}


@router.get("/admin/all", response_model=Envelope[IssueList])
def list_all_issues(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[IssueStatus] = None,
    category: Optional[IssueCategory] = None,
    priority: Optional[IssuePriority] = None,
    search: Optional[str] = None,
    assigned_to: Optional[uuid.UUID] = Query(None, alias="assignedTo"),
    staff: User = Depends(staff_required),
    session: Session = Depends(get_session),
):
    statement = _filtered(select(Issue), status, category, priority, search)
    if assigned_to:
        statement = statement.where(Issue.assigned_to == assigned_to)
    return {"success": True, "data": _page(session, statement, page, limit)}


@router.get("/categories", response_model=Envelope[List[CategoryOption]])
def list_categories():
    return {
        "success": True,
        "data": [CategoryOption(value=category.value, label=_label(category.value)) for category in IssueCategory],
    }


@router.get("/analytics")
def issue_analytics(
    period: str = Query("month"),
    category: Optional[IssueCategory] = None,
    staff: User = Depends(staff_required),
    session: Session = Depends(get_session),
):
    if period not in ANALYTICS_PERIODS:
        raise ValidationError(f"Period must be one of: {', '.join(ANALYTICS_PERIODS)}")

    since = utcnow() - timedelta(days=ANALYTICS_PERIODS[period])
    statement = select(Issue).where(Issue.created_at >= since)
    if category:
        statement = statement.where(Issue.category == category)
    issues = session.exec(statement).all()

    resolved_states = {IssueStatus.resolved, IssueStatus.closed}
    resolved = [issue for issue in issues if issue.status in resolved_states]
    hours = [value for value in (lifecycle.resolution_hours(issue) for issue in resolved) if value is not None]

    return {
        "success": True,
        "data": {
            "period": period,
            "totalIssues": len(issues),
            "resolvedIssues": len(resolved),
            "pendingIssues": len(issues) - len(resolved),
            "resolutionRate": round(len(resolved) / len(issues) * 100, 1) if issues else 0,
            "avgResolutionTime": round(sum(hours) / len(hours), 2) if hours else None,
            "overdueIssues": sum(1 for issue in issues if lifecycle.is_issue_overdue(issue)),
            "categoryDistribution": dict(Counter(issue.category.value for issue in issues)),
            "priorityDistribution": dict(Counter(issue.priority.value for issue in issues)),
            "statusDistribution": dict(Counter(issue.status.value for issue in issues)),
        },
    }


@router.get("/{issue_id}", response_model=Envelope[IssueDetail])
def get_issue(
    issue: Issue = Depends(require_issue_access("read")),
    session: Session = Depends(get_session),
):
    assignments = session.exec(
        select(Assignment).where(Assignment.issue_id == issue.id).order_by(Assignment.assigned_at.desc())
    ).all()
    return {
        "success": True,
        "data": IssueDetail(
            issue=IssueRead.model_validate(issue),
            assignments=[AssignmentRead.model_validate(item) for item in assignments],
        ),
    }


@router.put("/{issue_id}", response_model=Envelope[IssueRead])
def update_issue(
    payload: IssueUpdate,
    request: Request,
    issue: Issue = Depends(require_issue_access("update")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    changes = payload.model_dump(exclude_unset=True)
    if "internal_notes" in changes and current_user.role == UserRole.resident:
        raise PermissionDeniedError("Residents cannot edit internal notes")

    for field, value in changes.items():
        if field == "address":
            value = Address.model_validate(value).to_document() if value is not None else None
        setattr(issue, field, value)
    issue.updated_at = utcnow()
    session.add(issue)
    session.commit()
    session.refresh(issue)

    log_action(
        session,
        current_user.id,
        AuditAction.ISSUE_UPDATED,
        {"issueId": str(issue.id), "fields": sorted(changes)},
        request=request,
    )
    return {"success": True, "message": "Issue updated successfully", "data": IssueRead.model_validate(issue)}


@router.delete("/{issue_id}")
def delete_issue(
    request: Request,
    issue: Issue = Depends(require_issue_access("delete")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    issue_id = issue.id
    title = issue.title
    for assignment in session.exec(select(Assignment).where(Assignment.issue_id == issue_id)).all():
        session.delete(assignment)
    for feedback in session.exec(select(Feedback).where(Feedback.issue_id == issue_id)).all():
        session.delete(feedback)
    remove_media(issue)
    session.delete(issue)
    session.commit()

    log_action(
        session,
        current_user.id,
        AuditAction.ISSUE_DELETED,
        {"issueId": str(issue_id), "title": title},
        request=request,
    )
    return {"success": True, "message": "Issue deleted successfully"}


@router.put("/{issue_id}/status", response_model=Envelope[IssueRead])
def update_issue_status(
    payload: IssueStatusUpdate,
    request: Request,
    issue: Issue = Depends(require_issue_access("update")),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    previous = issue.status
    now = utcnow()
    lifecycle.set_issue_status(issue, payload.status, now)
    session.add(issue)

    # keep the current work order in step with the issue
    assignment = current_assignment(session, issue.id)
    if assignment and assignment.status not in lifecycle.ASSIGNMENT_TERMINAL:
        if payload.status == IssueStatus.in_progress:
            if assignment.status == AssignmentStatus.pending:
                lifecycle.accept_assignment(assignment, now)
            lifecycle.start_assignment(assignment, now)
            session.add(assignment)
        elif payload.status == IssueStatus.resolved:
            lifecycle.complete_assignment(assignment, notes=payload.notes, now=now)
            session.add(assignment)

    session.commit()
    session.refresh(issue)

    log_action(
        session,
        current_user.id,
        AuditAction.ISSUE_STATUS_UPDATED,
        {"issueId": str(issue.id), "from": previous.value, "to": payload.status.value, "notes": payload.notes},
        request=request,
    )
    return {"success": True, "message": "Issue status updated successfully", "data": IssueRead.model_validate(issue)}


@router.post("/{issue_id}/assign", response_model=Envelope[AssignmentRead])
def assign_issue(
    payload: AssignIssueRequest,
    request: Request,
    issue: Issue = Depends(require_issue_access("assign")),
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    if issue.status in lifecycle.ISSUE_TERMINAL:
        raise ValidationError(f"Cannot assign an issue that is already {issue.status.value}")

    technician = session.get(User, payload.technician_id)
    if not technician or technician.role != UserRole.technician:
        raise NotFoundError("Technician not found")

    now = utcnow()
    assignment = Assignment(
        issue_id=issue.id,
        assigned_to=technician.id,
        assigned_by=committee.id,
        priority=payload.priority or issue.priority,
        is_urgent=payload.is_urgent,
        assigned_at=now,
        assignment_notes=payload.assignment_notes,
    )
    if payload.estimated_completion_time is not None:
        assignment.estimated_start_time = now
        assignment.estimated_completion_time = now + timedelta(hours=payload.estimated_completion_time)
        issue.estimated_completion_time = payload.estimated_completion_time

    issue.assigned_to = technician.id
    issue.assigned_by = committee.id
    lifecycle.set_issue_status(issue, IssueStatus.assigned, now)
    session.add(assignment)
    session.add(issue)
    session.commit()
    session.refresh(assignment)

    log_action(
        session,
        committee.id,
        AuditAction.ISSUE_ASSIGNED,
        {"issueId": str(issue.id), "technicianId": str(technician.id), "assignmentId": str(assignment.id)},
        request=request,
    )
    return {"success": True, "message": "Issue assigned successfully", "data": AssignmentRead.model_validate(assignment)}
