"""
Role and ownership decisions for issues and assignments.

Every function here is pure: it looks only at the ``Actor`` and the few
record fields passed in, and answers with a boolean. Route dependencies turn
a ``False`` into a 403 after the record has been looked up, so a missing
record is always reported as 404 first.

Issue table::

    role         read      update                 delete     assign
    resident     own       own, status == new     never      never
    technician   all       all                    never      never
    committee    all       all                    yes        yes

Assignment table::

    role         read      update     complete
    technician   own       own        own
    committee    all       all        never
    resident     never     never      never

Anything outside the recognised actions is denied.
"""
import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

RESIDENT = "resident"
COMMITTEE = "committee"
TECHNICIAN = "technician"

STAFF_ROLES = frozenset({COMMITTEE, TECHNICIAN})

ISSUE_ACTIONS = frozenset({"read", "update", "delete", "assign"})
ASSIGNMENT_ACTIONS = frozenset({"read", "update", "complete"})


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)


def is_staff(role: str) -> bool:
    return role in STAFF_ROLES


def has_permission(actor: Actor, permission: str) -> bool:
    return actor.role == COMMITTEE and permission in actor.permissions


def can_access_issue(actor: Actor, reporter_id: Optional[uuid.UUID], status: str, action: str) -> bool:
    if action not in ISSUE_ACTIONS:
        return False

    if actor.role == RESIDENT:
        owns = reporter_id is not None and reporter_id == actor.id
        if action == "read":
            return owns
        if action == "update":
            return owns and _value(status) == "new"
        return False

    if actor.role in STAFF_ROLES:
        if action in ("read", "update"):
            return True
        return actor.role == COMMITTEE

    return False


def can_access_assignment(actor: Actor, assignee_id: Optional[uuid.UUID], action: str) -> bool:
    if action not in ASSIGNMENT_ACTIONS:
        return False

    if actor.role == TECHNICIAN:
        return assignee_id is not None and assignee_id == actor.id

    if actor.role == COMMITTEE:
        return action in ("read", "update")

    return False


def _value(status) -> str:
    return getattr(status, "value", status)
