"""
Rating aggregation.

Averages are always recomputed from the full review set for the role
rather than updated incrementally, so repeated submissions cannot
accumulate floating-point drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .enums import ReviewRole
from .errors import ValidationError

MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True)
class Review:
    reviewer_id: int
    role: ReviewRole
    rating: int
    comment: Optional[str] = None
    ride_id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class RatingSummary:
    average: float = 0.0
    count: int = 0


def validate_rating(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Rating must be an integer")
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return value


def summarize(reviews: Iterable[Review], role: ReviewRole) -> RatingSummary:
    values = [r.rating for r in reviews if r.role is role]
    if not values:
        return RatingSummary()
    return RatingSummary(average=sum(values) / len(values), count=len(values))
