import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, select

from core.config import FEEDBACK_AUTO_APPROVE
from core.database import get_session
from core.errors import NotFoundError, PermissionDeniedError, ValidationError
from models.audit_log import AuditAction
from models.feedback import Feedback, FeedbackStatus
from models.issue import Issue, IssueStatus
from models.user import User, UserRole
from routes.deps import current_assignment, get_issue_or_404, parse_uuid
from schemas.common import Envelope
from schemas.feedback import (
    FeedbackCreate,
    FeedbackRead,
    ModerateRequest,
    RatingSummary,
    RespondRequest,
    TechnicianRatings,
)
from schemas.user import UserRead
from services import ratings
from services.audit import log_action
from utils.security import committee_required, get_current_user
from utils.timeutils import utcnow

router = APIRouter(tags=["Feedback"])
logger = logging.getLogger(__name__)

REPORTS_BEFORE_FLAG = 3
RECENT_FEEDBACK_LIMIT = 10


def _get_feedback_or_404(session: Session, feedback_id: str) -> Feedback:
    feedback = session.get(Feedback, parse_uuid(feedback_id, "Feedback"))
    if not feedback:
        raise NotFoundError("Feedback not found")
    return feedback


def _public(feedback: Feedback) -> FeedbackRead:
    read = FeedbackRead.model_validate(feedback)
    if feedback.is_anonymous:
        read.user_id = None
    return read


def _apply_rating(session: Session, feedback: Feedback, issue: Issue):
    """Copy an approved score onto the issue, its current assignment and the technician."""
    technician_id = feedback.technician_id or issue.assigned_to
    if technician_id:
        technician = session.get(User, technician_id)
        if not technician:
            raise NotFoundError("Technician not found")
        ratings.append_rating(technician, feedback.overall_rating)
        session.add(technician)

    now = utcnow()
    issue.rating = feedback.overall_rating
    issue.rating_comment = feedback.comment
    issue.rated_at = now
    session.add(issue)

    assignment = current_assignment(session, issue.id)
    if assignment:
        assignment.quality_rating = feedback.overall_rating
        assignment.updated_at = now
        session.add(assignment)


@router.post("/", status_code=201, response_model=Envelope[FeedbackRead])
def submit_feedback(
    payload: FeedbackCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    issue = get_issue_or_404(session, payload.issue_id)
    if issue.reported_by != current_user.id:
        raise PermissionDeniedError("Only the issue reporter can submit feedback")
    if issue.status not in (IssueStatus.resolved, IssueStatus.closed):
        raise ValidationError("Feedback can only be submitted for resolved or closed issues")

    existing = session.exec(
        select(Feedback).where(Feedback.issue_id == issue.id, Feedback.user_id == current_user.id)
    ).first()
    if existing:
        raise ValidationError("Feedback has already been submitted for this issue")

    assignment = current_assignment(session, issue.id)
    feedback = Feedback(
        issue_id=issue.id,
        user_id=current_user.id,
        assignment_id=assignment.id if assignment else None,
        technician_id=issue.assigned_to,
        overall_rating=payload.rating,
        quality_rating=payload.quality_rating,
        speed_rating=payload.speed_rating,
        communication_rating=payload.communication_rating,
        professionalism_rating=payload.professionalism_rating,
        comment=payload.comment,
        categories=[category.value for category in payload.categories],
        is_anonymous=payload.is_anonymous,
        language=current_user.language.value,
        status=FeedbackStatus.approved if FEEDBACK_AUTO_APPROVE else FeedbackStatus.pending,
    )
    if feedback.status == FeedbackStatus.approved:
        feedback.moderated_at = utcnow()
        _apply_rating(session, feedback, issue)

    # feedback, issue rating and technician average go out in one commit
    session.add(feedback)
    session.commit()
    session.refresh(feedback)

    log_action(
        session,
        current_user.id,
        AuditAction.FEEDBACK_SUBMITTED,
        {"feedbackId": str(feedback.id), "issueId": str(issue.id), "rating": feedback.overall_rating},
        request=request,
    )
    return {"success": True, "message": "Feedback submitted successfully", "data": _public(feedback)}


@router.get("/issue/{issue_id}", response_model=Envelope[FeedbackRead])
def get_issue_feedback(
    issue_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    issue = get_issue_or_404(session, issue_id)
    feedback = session.exec(
        select(Feedback).where(Feedback.issue_id == issue.id, Feedback.user_id == current_user.id)
    ).first()
    if not feedback:
        raise NotFoundError("No feedback found for this issue")
    return {"success": True, "data": FeedbackRead.model_validate(feedback)}


@router.get("/technicians", response_model=Envelope[List[UserRead]])
def list_technician_ratings(
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    technicians = session.exec(
        select(User).where(User.role == UserRole.technician).order_by(User.rating.desc(), User.total_ratings.desc())
    ).all()
    return {"success": True, "data": [UserRead.model_validate(tech) for tech in technicians]}


@router.get("/technician/{technician_id}", response_model=Envelope[TechnicianRatings])
def get_technician_ratings(
    technician_id: str,
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    technician = session.get(User, parse_uuid(technician_id, "Technician"))
    if not technician:
        raise NotFoundError("Technician not found")
    if technician.role != UserRole.technician:
        raise ValidationError("User is not a technician")

    recent = session.exec(
        select(Feedback)
        .where(Feedback.technician_id == technician.id, Feedback.status == FeedbackStatus.approved)
        .order_by(Feedback.created_at.desc())
        .limit(RECENT_FEEDBACK_LIMIT)
    ).all()
    return {
        "success": True,
        "data": TechnicianRatings(
            technician=UserRead.model_validate(technician),
            summary=RatingSummary.model_validate(ratings.rating_summary(technician)),
            recent_feedback=[_public(item) for item in recent],
        ),
    }


@router.post("/{feedback_id}/moderate", response_model=Envelope[FeedbackRead])
def moderate_feedback(
    feedback_id: str,
    payload: ModerateRequest,
    request: Request,
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    feedback = _get_feedback_or_404(session, feedback_id)
    was_approved = feedback.status == FeedbackStatus.approved
    target = {
        "approve": FeedbackStatus.approved,
        "reject": FeedbackStatus.rejected,
        "flag": FeedbackStatus.flagged,
    }[payload.action]

    now = utcnow()
    feedback.status = target
    feedback.moderated_by = committee.id
    feedback.moderated_at = now
    feedback.moderation_notes = payload.notes
    feedback.updated_at = now

    # a score counts towards the technician once, on first approval
    if target == FeedbackStatus.approved and not was_approved:
        issue = session.get(Issue, feedback.issue_id)
        if issue:
            _apply_rating(session, feedback, issue)

    session.add(feedback)
    session.commit()
    session.refresh(feedback)

    log_action(
        session,
        committee.id,
        AuditAction.FEEDBACK_MODERATED,
        {"feedbackId": str(feedback.id), "action": payload.action},
        request=request,
    )
    return {"success": True, "message": f"Feedback {target.value}", "data": _public(feedback)}


@router.post("/{feedback_id}/respond", response_model=Envelope[FeedbackRead])
def respond_to_feedback(
    feedback_id: str,
    payload: RespondRequest,
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    feedback = _get_feedback_or_404(session, feedback_id)
    now = utcnow()
    feedback.response = {
        "text": payload.text,
        "respondedBy": str(committee.id),
        "respondedAt": now.isoformat(),
    }
    feedback.updated_at = now
    session.add(feedback)
    session.commit()
    session.refresh(feedback)
    return {"success": True, "message": "Response added", "data": _public(feedback)}


@router.post("/{feedback_id}/helpful", response_model=Envelope[FeedbackRead])
def mark_helpful(
    feedback_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    feedback = _get_feedback_or_404(session, feedback_id)
    feedback.helpful_votes += 1
    session.add(feedback)
    session.commit()
    session.refresh(feedback)
    return {"success": True, "data": _public(feedback)}


@router.post("/{feedback_id}/report", response_model=Envelope[FeedbackRead])
def report_feedback(
    feedback_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    feedback = _get_feedback_or_404(session, feedback_id)
    feedback.reported_count += 1
    if feedback.reported_count >= REPORTS_BEFORE_FLAG:
        feedback.status = FeedbackStatus.flagged
    session.add(feedback)
    session.commit()
    session.refresh(feedback)
    logger.info("Feedback %s reported by %s (%d reports)", feedback.id, current_user.id, feedback.reported_count)
    return {"success": True, "data": _public(feedback)}
