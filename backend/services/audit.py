import logging
import uuid
from typing import Optional, Union

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from models.audit_log import AuditAction, AuditLog, AuditStatus
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

COMPLIANCE_ACTIONS = {action.value for action in AuditAction}


def _request_context(request: Optional[Request]):
    if request is None:
        return None, None
    ip_address = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if not ip_address and request.client:
        ip_address = request.client.host
    return ip_address or None, request.headers.get("user-agent")


def log_action(
    session: Session,
    user_id: Optional[uuid.UUID],
    action: Union[AuditAction, str],
    details: Optional[dict] = None,
    request: Optional[Request] = None,
    status: AuditStatus = AuditStatus.SUCCESS,
) -> Optional[AuditLog]:
    """
    Append one row to the audit ledger.

    Actions outside the compliance set only go to the application log. A
    failed write is logged and rolled back, never raised.
    """
    action_name = getattr(action, "value", action)
    if action_name not in COMPLIANCE_ACTIONS:
        logger.info("user=%s action=%s details=%s", user_id, action_name, details)
        return None

    ip_address, user_agent = _request_context(request)
    audit = AuditLog(
        user_id=user_id,
        action=action_name,
        details=details or {},
        ip_address=ip_address,
        user_agent=user_agent,
        status=status,
        meta={"timestamp": utcnow().isoformat(), "legalBasis": "legitimate_interest"},
    )
    try:
        session.add(audit)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to write audit log entry for %s", action_name)
        return None
    return audit


def log_failed_action(
    session: Session,
    user_id: Optional[uuid.UUID],
    action: Union[AuditAction, str],
    error: str,
    details: Optional[dict] = None,
    request: Optional[Request] = None,
) -> Optional[AuditLog]:
    payload = dict(details or {})
    payload["error"] = error
    return log_action(session, user_id, action, payload, request=request, status=AuditStatus.FAILED)
