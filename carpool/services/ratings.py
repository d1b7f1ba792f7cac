"""Rating submission: append a review, recompute the role summary."""

from __future__ import annotations

import logging
from typing import Optional

from carpool.domain.effects import Notify
from carpool.domain.enums import NotificationType, ReviewRole
from carpool.domain.errors import Conflict
from carpool.domain.ratings import RatingSummary, Review, summarize, validate_rating
from carpool.infrastructure.locks import ride_key, user_key
from carpool.infrastructure.models import ReviewModel, UserModel
from carpool.services.base import Service

logger = logging.getLogger(__name__)


def reviews_of(user: UserModel) -> list[Review]:
    return [
        Review(
            reviewer_id=r.reviewer_id,
            role=ReviewRole(r.role),
            rating=r.rating,
            comment=r.comment,
            ride_id=r.ride_id,
            created_at=r.created_at,
        )
        for r in user.reviews
    ]


def summary_of(user: UserModel, role: ReviewRole) -> RatingSummary:
    if role is ReviewRole.DRIVER:
        return RatingSummary(user.rating_driver_average, user.rating_driver_count)
    return RatingSummary(user.rating_passenger_average, user.rating_passenger_count)


class RatingService(Service):
    async def submit(
        self,
        reviewer_id: int,
        rated_user_id: int,
        role: ReviewRole,
        rating: int,
        comment: Optional[str] = None,
        ride_id: Optional[int] = None,
    ) -> RatingSummary:
        validate_rating(rating)
        if reviewer_id == rated_user_id:
            raise Conflict("You cannot rate yourself")

        keys = [user_key(rated_user_id)]
        if ride_id is not None:
            keys.append(ride_key(ride_id))

        async with self.transaction(*keys) as uow:
            await uow.users.get(reviewer_id)
            user = await uow.users.get(rated_user_id, for_update=True)
            user.reviews.append(
                ReviewModel(
                    reviewer_id=reviewer_id,
                    role=role,
                    rating=rating,
                    comment=comment,
                    ride_id=ride_id,
                )
            )
            summary = summarize(reviews_of(user), role)
            if role is ReviewRole.DRIVER:
                user.rating_driver_average = summary.average
                user.rating_driver_count = summary.count
            else:
                user.rating_passenger_average = summary.average
                user.rating_passenger_count = summary.count

            if ride_id is not None:
                ride = await uow.rides.get(ride_id, for_update=True)
                if ride.record_passenger_rating(reviewer_id, rated_user_id, rating, comment):
                    await uow.rides.save(ride)

            await self.apply(
                uow,
                [
                    Notify(
                        recipient_id=rated_user_id,
                        type=NotificationType.RATING_RECEIVED,
                        title="New Rating",
                        message=f"You received a {rating}-star rating as {role.value}",
                        sender_id=reviewer_id,
                        ride_id=ride_id,
                    )
                ],
            )
        logger.info(
            "User %s rated %s as %s: %d (avg %.2f over %d)",
            reviewer_id, rated_user_id, role.value, rating, summary.average, summary.count,
        )
        return summary
