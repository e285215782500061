"""
Recurring issue detection.

Issues are grouped by (category, location key), where the location key is the
block number, else the area, else ``"unknown"``. A group with at least
``min_issues`` reports in total is a recurring problem; its severity comes from
how many of those reports fall inside the trailing recency window. Only groups
with ``min_issues`` recent reports are surfaced as alerts.

Nothing is persisted. Each iteration of a detector re-reads the issue table,
so the detector can be iterated any number of times and always reflects the
current data.
"""
import logging
import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Tuple

from sqlmodel import Session, select

from core.config import RECURRING_MIN_ISSUES, RECURRING_RECENT_DAYS
from models.issue import Issue, IssueStatus
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

SEVERITY_RANK = {HIGH: 3, MEDIUM: 2, LOW: 1}
UNKNOWN_LOCATION = "unknown"
RECENT_SAMPLE_SIZE = 5

_WORD_RE = re.compile(r"[a-z0-9]+")


def location_key(issue: Issue) -> str:
    address = issue.address or {}
    block = (address.get("blockNumber") or "").strip()
    if block:
        return block
    area = (address.get("area") or "").strip()
    if area:
        return area
    return UNKNOWN_LOCATION


def severity_for(recent_count: int) -> str:
    if recent_count >= 5:
        return HIGH
    if recent_count >= 3:
        return MEDIUM
    return LOW


def common_words(titles: List[str], limit: int = 5) -> List[str]:
    counts = Counter(
        word
        for title in titles
        for word in _WORD_RE.findall((title or "").lower())
        if len(word) > 3
    )
    return [word for word, count in counts.most_common() if count >= 2][:limit]


@dataclass
class RecurringGroup:
    category: str
    location: str
    issue_count: int
    recent_issue_count: int
    total_cost: float
    severity: str
    average_cost: float = 0.0
    unresolved_count: int = 0
    first_reported: Optional[datetime] = None
    last_reported: Optional[datetime] = None
    avg_resolution_days: Optional[float] = None
    common_words: List[str] = field(default_factory=list)
    recent_issues: List[dict] = field(default_factory=list)
    block_number: Optional[str] = None
    area: Optional[str] = None
    coordinates: Optional[Tuple[float, float]] = None  # (longitude, latitude)

    @property
    def id(self) -> str:
        return f"{self.category}_{self.location}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "location": self.location,
            "blockNumber": self.block_number,
            "area": self.area,
            "issueCount": self.issue_count,
            "recentIssueCount": self.recent_issue_count,
            "totalCost": self.total_cost,
            "averageCost": self.average_cost,
            "unresolvedCount": self.unresolved_count,
            "severity": self.severity,
            "firstReported": self.first_reported.isoformat() if self.first_reported else None,
            "lastReported": self.last_reported.isoformat() if self.last_reported else None,
            "avgResolutionDays": self.avg_resolution_days,
            "commonWords": self.common_words,
            "recentIssues": self.recent_issues,
        }


class RecurringIssueDetector:
    """
    Finite, restartable iterable of ``RecurringGroup`` records.

    Iterating reads every issue in a single query and fully materialises the
    result before the first group is yielded, so a failing read raises before
    any output is produced. Groups are ordered by severity, then by recent
    report count, both descending.
    """

    def __init__(
        self,
        session: Session,
        recent_days: int = RECURRING_RECENT_DAYS,
        min_issues: int = RECURRING_MIN_ISSUES,
        now: Optional[datetime] = None,
    ):
        self.session = session
        self.recent_days = recent_days
        self.min_issues = min_issues
        self.now = now

    def __iter__(self) -> Iterator[RecurringGroup]:
        return iter(self.detect())

    def detect(self) -> List[RecurringGroup]:
        issues = list(self.session.exec(select(Issue)).all())
        now = self.now or utcnow()
        cutoff = now - timedelta(days=self.recent_days)

        grouped: Dict[Tuple[str, str], List[Issue]] = defaultdict(list)
        for issue in issues:
            grouped[(_enum_value(issue.category), location_key(issue))].append(issue)

        groups = [
            self._summarise(category, location, members, cutoff)
            for (category, location), members in grouped.items()
            if len(members) >= self.min_issues
        ]
        groups.sort(key=lambda g: (SEVERITY_RANK[g.severity], g.recent_issue_count), reverse=True)
        logger.debug("Recurring detection found %d groups across %d issues", len(groups), len(issues))
        return groups

    def alerts(self) -> List[RecurringGroup]:
        return [group for group in self if group.recent_issue_count >= self.min_issues]

    def _summarise(self, category: str, location: str, members: List[Issue], cutoff: datetime) -> RecurringGroup:
        members = sorted(members, key=lambda issue: issue.created_at)
        recent = [issue for issue in members if issue.created_at >= cutoff]
        total_cost = float(sum(issue.cost or 0 for issue in members))

        resolution_days = [
            (issue.resolved_at - issue.created_at).total_seconds() / 86400
            for issue in members
            if issue.resolved_at is not None
        ]
        unresolved = [
            issue
            for issue in members
            if _enum_value(issue.status) not in (IssueStatus.resolved.value, IssueStatus.closed.value)
        ]

        address = next((issue.address for issue in members if issue.address), None) or {}
        located = next((issue for issue in members if issue.longitude is not None and issue.latitude is not None), None)

        return RecurringGroup(
            category=category,
            location=location,
            issue_count=len(members),
            recent_issue_count=len(recent),
            total_cost=total_cost,
            severity=severity_for(len(recent)),
            average_cost=round(total_cost / len(members), 2),
            unresolved_count=len(unresolved),
            first_reported=members[0].created_at,
            last_reported=members[-1].created_at,
            avg_resolution_days=round(sum(resolution_days) / len(resolution_days), 1) if resolution_days else None,
            common_words=common_words([issue.title for issue in members]),
            recent_issues=[
                {
                    "id": str(issue.id),
                    "title": issue.title,
                    "status": _enum_value(issue.status),
                    "createdAt": issue.created_at.isoformat(),
                }
                for issue in reversed(members[-RECENT_SAMPLE_SIZE:])
            ],
            block_number=address.get("blockNumber"),
            area=address.get("area"),
            coordinates=(located.longitude, located.latitude) if located else None,
        )


def severity_counts(groups: List[RecurringGroup]) -> Dict[str, int]:
    counts = {HIGH: 0, MEDIUM: 0, LOW: 0}
    for group in groups:
        counts[group.severity] += 1
    return counts


def _enum_value(value) -> str:
    return getattr(value, "value", value)
