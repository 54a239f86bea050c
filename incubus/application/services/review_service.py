from __future__ import annotations

import logging
from typing import Any

from incubus.application.dto.auth import AuthenticatedPrincipal
from incubus.application.services.audit_service import AuditService
from incubus.application.services.notification_service import NotificationService
from incubus.core.database import get_session
from incubus.core.errors import bad_request, conflict, forbidden, not_found
from incubus.domain.pagination import PageParams, SortSpec
from incubus.domain.policies.reviews import ReviewPolicy, ReviewStatus
from incubus.infrastructure.db.models.catalog import Review
from incubus.infrastructure.repositories.game_repository import GameRepository
from incubus.infrastructure.repositories.review_repository import ReviewRepository

logger = logging.getLogger(__name__)

STATUS_NOTICES = {
    ReviewStatus.APPROVED: ("success", "Your review was approved"),
    ReviewStatus.REJECTED: ("warning", "Your review was rejected"),
    ReviewStatus.PENDING: ("info", "Your review is back in moderation"),
}


def review_to_dict(review: Review, author=None) -> dict:
    return {
        "id": review.id,
        "game_id": review.game_id,
        "user_id": review.user_id,
        "author_name": author.name if author is not None else None,
        "author_image": author.image if author is not None else None,
        "rating": review.rating,
        "title": review.title,
        "content": review.content,
        "is_recommended": review.is_recommended,
        "is_verified_purchase": review.is_verified_purchase,
        "status": review.status,
        "upvotes": review.upvotes,
        "downvotes": review.downvotes,
        "created_at": review.created_at,
        "updated_at": review.updated_at,
    }


class ReviewService:
    def __init__(self, notification_service: NotificationService | None = None):
        self.notification_service = notification_service or NotificationService()

    async def list_reviews(
        self,
        *,
        game_id: int,
        params: PageParams,
        sort: SortSpec,
        rating: int | None = None,
        status: str | None = None,
        verified: bool | None = None,
        recommended: bool | None = None,
    ) -> tuple[list[dict], int, dict]:
        async with get_session() as session:
            if await GameRepository(session).get_by_id(game_id) is None:
                raise not_found("Game")
            repo = ReviewRepository(session)
            rows, total = await repo.list_reviews(
                game_id=game_id,
                rating=rating,
                status=status,
                verified=verified,
                recommended=recommended,
                sort=sort,
                limit=params.limit,
                offset=params.offset,
            )
            average, approved = await repo.approved_summary(game_id)
            summary = {
                "average_rating": round(average, 2) if average is not None else None,
                "approved_reviews_count": approved,
            }
            return [review_to_dict(review, author) for review, author in rows], total, summary

    async def create_review(
        self,
        *,
        principal: AuthenticatedPrincipal,
        game_id: int,
        rating: int,
        content: str,
        title: str | None,
        is_recommended: bool,
    ) -> dict:
        if not ReviewPolicy.rating_is_valid(rating):
            raise bad_request("INVALID_RATING", "Rating must be between 1 and 5")
        async with get_session() as session:
            game_repo = GameRepository(session)
            if await game_repo.get_by_id(game_id) is None:
                raise not_found("Game")
            repo = ReviewRepository(session)
            if await repo.get_for_user(game_id=game_id, user_id=principal.user_id) is not None:
                raise conflict("REVIEW_ALREADY_EXISTS", "You have already reviewed this game")
            review = await repo.create(
                game_id=game_id,
                user_id=principal.user_id,
                rating=rating,
                title=title,
                content=content,
                is_recommended=is_recommended,
                is_verified_purchase=await game_repo.user_holds_license(
                    user_id=principal.user_id,
                    game_id=game_id,
                ),
                status=ReviewStatus.PENDING.value,
                upvotes=0,
                downvotes=0,
            )
            return review_to_dict(review)

    async def get_review(self, *, game_id: int, review_id: int) -> dict:
        async with get_session() as session:
            review = await ReviewRepository(session).get_in_game(game_id=game_id, review_id=review_id)
            if review is None:
                raise not_found("Review")
            return review_to_dict(review)

    async def update_review(
        self,
        *,
        principal: AuthenticatedPrincipal,
        game_id: int,
        review_id: int,
        changes: dict[str, Any],
    ) -> dict:
        async with get_session() as session:
            repo = ReviewRepository(session)
            review = await repo.get_in_game(game_id=game_id, review_id=review_id)
            if review is None:
                raise not_found("Review")

            if review.user_id == principal.user_id:
                values = {
                    key: value
                    for key, value in changes.items()
                    if key in ReviewPolicy.AUTHOR_EDITABLE_FIELDS
                    and (value is not None or key == "title")
                }
                if "rating" in values and not ReviewPolicy.rating_is_valid(values["rating"]):
                    raise bad_request("INVALID_RATING", "Rating must be between 1 and 5")
                values["status"] = ReviewStatus.PENDING.value
            elif principal.is_admin:
                if set(changes) - {"status"} or "status" not in changes:
                    raise forbidden("Administrators can only change the review status")
                status = ReviewStatus(changes["status"])
                await self._set_status(session, review, actor=principal, status=status)
                return review_to_dict(review)
            else:
                raise forbidden("You can only edit your own reviews")

            await repo.update(review, **values)
            return review_to_dict(review)

    async def delete_review(
        self,
        *,
        principal: AuthenticatedPrincipal,
        game_id: int,
        review_id: int,
    ) -> None:
        async with get_session() as session:
            repo = ReviewRepository(session)
            review = await repo.get_in_game(game_id=game_id, review_id=review_id)
            if review is None:
                raise not_found("Review")
            if review.user_id != principal.user_id and not principal.is_admin:
                raise forbidden("You can only delete your own reviews")
            await repo.delete(review.id)

    async def vote(
        self,
        *,
        principal: AuthenticatedPrincipal,
        game_id: int,
        review_id: int,
        vote_type: str,
    ) -> dict:
        async with get_session() as session:
            repo = ReviewRepository(session)
            review = await repo.get_in_game(game_id=game_id, review_id=review_id, lock=True)
            if review is None:
                raise not_found("Review")
            if review.user_id == principal.user_id:
                raise bad_request("CANNOT_VOTE_OWN_REVIEW", "You cannot vote on your own review")

            existing = await repo.get_vote(review_id=review.id, user_id=principal.user_id)
            previous = existing.vote_type if existing is not None else None
            up, down = ReviewPolicy.vote_deltas(previous, vote_type)
            await repo.set_vote(
                review_id=review.id,
                user_id=principal.user_id,
                vote_type=None if vote_type == "remove" else vote_type,
            )
            await repo.shift_vote_counts(review, up=up, down=down)
            return {
                "review": review_to_dict(review),
                "previous_vote": previous,
                "vote": None if vote_type == "remove" else vote_type,
            }

    async def list_moderation_queue(self, *, params: PageParams) -> tuple[list[dict], int]:
        async with get_session() as session:
            rows, total = await ReviewRepository(session).list_moderation_queue(
                limit=params.limit,
                offset=params.offset,
            )
            return [
                {**review_to_dict(review, author), "game_title": game.title}
                for review, author, game in rows
            ], total

    async def moderate(
        self,
        *,
        actor: AuthenticatedPrincipal,
        review_id: int,
        status: str,
    ) -> dict:
        """Approve or reject a review and tell its author."""
        if status not in (ReviewStatus.APPROVED, ReviewStatus.REJECTED):
            raise bad_request("INVALID_STATUS", "Moderation status must be APPROVED or REJECTED")
        async with get_session() as session:
            repo = ReviewRepository(session)
            review = await repo.get_by_id(review_id)
            if review is None:
                raise not_found("Review")
            await self._set_status(session, review, actor=actor, status=ReviewStatus(status))
            return review_to_dict(review)

    async def _set_status(
        self,
        session,
        review: Review,
        *,
        actor: AuthenticatedPrincipal,
        status: ReviewStatus,
    ) -> None:
        """Moderator status change: audited, and the author is notified when it differs."""
        if review.status == status:
            return
        await ReviewRepository(session).update(review, status=status.value)
        verb = status.lower()
        await AuditService.record_in_session(
            session,
            action=f"review.{verb}",
            entity_type="review",
            entity_id=review.id,
            user_id=actor.user_id,
        )
        kind, title = STATUS_NOTICES[status]
        await self.notification_service.notify(
            session,
            user_ids=[review.user_id],
            sender_id=actor.user_id,
            event_type=f"review.{verb}",
            category="reviews",
            kind=kind,
            title=title,
            message=f"Your review of game #{review.game_id} was set to {verb} by a moderator.",
            link=f"/games/{review.game_id}/reviews/{review.id}",
            entity_type="review",
            entity_id=review.id,
        )
        logger.info("Review status review_id=%s status=%s actor=%s", review.id, status, actor.user_id)
