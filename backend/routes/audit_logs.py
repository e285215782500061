import uuid
from collections import defaultdict
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlmodel import Session, select

from core.database import get_session
from models.audit_log import AuditLog, AuditStatus
from models.user import User
from schemas.audit_log import AuditLogList, AuditLogRead
from schemas.common import Envelope, paginate
from utils.security import committee_required
from utils.timeutils import utcnow

router = APIRouter(tags=["Audit Logs"])


@router.get("/", response_model=Envelope[AuditLogList])
def list_audit_logs(
    action: Optional[str] = None,
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    statement = select(AuditLog)
    if action:
        statement = statement.where(AuditLog.action == action)
    if user_id:
        statement = statement.where(AuditLog.user_id == user_id)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    logs = session.exec(
        statement.order_by(AuditLog.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return {
        "success": True,
        "data": AuditLogList(
            logs=[AuditLogRead.model_validate(log) for log in logs],
            pagination=paginate(total, page, limit),
        ),
    }


@router.get("/stats")
def audit_stats(
    days: int = Query(30, ge=1, le=365),
    committee: User = Depends(committee_required),
    session: Session = Depends(get_session),
):
    since = utcnow() - timedelta(days=days)
    rows = session.exec(
        select(AuditLog.action, AuditLog.status, func.count())
        .where(AuditLog.created_at >= since)
        .group_by(AuditLog.action, AuditLog.status)
    ).all()

    stats = defaultdict(lambda: {"count": 0, "successCount": 0, "failureCount": 0})
    for action, status, count in rows:
        entry = stats[action]
        entry["count"] += count
        if status == AuditStatus.SUCCESS:
            entry["successCount"] += count
        elif status == AuditStatus.FAILED:
            entry["failureCount"] += count

    return {
        "success": True,
        "data": [
            {"action": action, **entry}
            for action, entry in sorted(stats.items(), key=lambda item: item[1]["count"], reverse=True)
        ],
    }
