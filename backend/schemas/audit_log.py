import uuid
from datetime import datetime
from typing import List, Optional
from models.audit_log import AuditStatus
from schemas.common import APIModel, Pagination


class AuditLogRead(APIModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    action: str
    details: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: AuditStatus
    created_at: datetime


class AuditLogList(APIModel):
    logs: List[AuditLogRead]
    pagination: Pagination
