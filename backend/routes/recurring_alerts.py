import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from core.database import get_session
from models.user import User, UserRole
from services.geocoding import describe_location
from services.recurring import RecurringGroup, RecurringIssueDetector, severity_counts
from utils.security import committee_required

router = APIRouter(tags=["Recurring Alerts"])
logger = logging.getLogger(__name__)


async def _alert_view(group: RecurringGroup) -> dict:
    view = group.to_dict()
    view["readableLocation"] = await describe_location(group.block_number, group.area, group.coordinates)
    return view


@router.get("/")
async def get_recurring_alerts(
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    alerts = RecurringIssueDetector(session).alerts()
    counts = severity_counts(alerts)
    return {
        "success": True,
        "data": {
            "recurringProblems": [await _alert_view(group) for group in alerts],
            "totalCount": len(alerts),
            "highSeverity": counts["high"],
            "mediumSeverity": counts["medium"],
            "lowSeverity": counts["low"],
        },
    }


@router.post("/detect")
def run_detection(
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    detector = RecurringIssueDetector(session)
    groups = list(detector)

    recipients = session.exec(select(User.email).where(User.role == UserRole.committee)).all()
    for group in groups:
        if group.recent_issue_count < detector.min_issues:
            continue
        # email delivery is not wired up; committee notifications go to the log
        logger.warning(
            "Recurring %s issue at %s: %d recent, %d total, severity %s; notifying %d committee members",
            group.category,
            group.location,
            group.recent_issue_count,
            group.issue_count,
            group.severity,
            len(recipients),
        )

    return {
        "success": True,
        "message": f"Detected {len(groups)} recurring problems",
        "data": [group.to_dict() for group in groups],
    }
