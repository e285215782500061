import logging
from typing import Dict

from sqlmodel import Session

from core.errors import ValidationError
from models.user import User, UserRole
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 5


def validate_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        raise ValidationError(f"Rating must be an integer between {MIN_SCORE} and {MAX_SCORE}")
    return score


def append_rating(user: User, score: int) -> User:
    """
    Add one score to a technician's history and recompute the displayed rating
    as the plain arithmetic mean of every score so far.

    Nothing on ``user`` changes if the user is not a technician or the score is
    out of range.
    """
    if UserRole(user.role) != UserRole.technician:
        raise ValidationError("Only technicians can receive ratings")
    validate_score(score)

    # reassign rather than mutate so the JSON column is flagged dirty
    scores = list(user.rating_scores or []) + [score]
    user.rating_scores = scores
    user.total_ratings = len(scores)
    user.rating = sum(scores) / len(scores)
    user.updated_at = utcnow()
    return user


def record_rating(session: Session, user: User, score: int) -> User:
    append_rating(user, score)
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Technician %s rated %s, average now %.2f", user.id, score, user.rating)
    return user


def rating_summary(user: User) -> Dict:
    scores = list(user.rating_scores or [])
    distribution = {str(value): 0 for value in range(MIN_SCORE, MAX_SCORE + 1)}
    for score in scores:
        distribution[str(score)] += 1
    return {
        "averageRating": round(user.rating or 0, 1),
        "totalRatings": len(scores),
        "distribution": distribution,
    }
