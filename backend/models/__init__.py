from models.user import User
from models.issue import Issue
from models.assignment import Assignment
from models.feedback import Feedback
from models.audit_log import AuditLog

__all__ = ["User", "Issue", "Assignment", "Feedback", "AuditLog"]
