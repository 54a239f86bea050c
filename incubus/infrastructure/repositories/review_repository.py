from __future__ import annotations

from typing import Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.domain.pagination import SortSpec
from incubus.infrastructure.db.models.auth import User
from incubus.infrastructure.db.models.catalog import Game, Review, ReviewVote
from incubus.infrastructure.repositories.base import BaseRepository


class ReviewRepository(BaseRepository[Review]):
    model = Review

    SORT_COLUMNS = {
        "rating": Review.rating,
        "createdAt": Review.created_at,
        "upvotes": Review.upvotes,
    }

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_reviews(
        self,
        *,
        game_id: int | None,
        rating: int | None,
        status: str | None,
        verified: bool | None,
        recommended: bool | None,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[tuple[Review, User]], int]:
        stmt = select(Review, User).join(User, User.id == Review.user_id)
        if game_id is not None:
            stmt = stmt.where(Review.game_id == game_id)
        if rating is not None:
            stmt = stmt.where(Review.rating == rating)
        if status:
            stmt = stmt.where(Review.status == status)
        if verified is not None:
            stmt = stmt.where(Review.is_verified_purchase == verified)
        if recommended is not None:
            stmt = stmt.where(Review.is_recommended == recommended)
        stmt = self.apply_sort(stmt, sort, self.SORT_COLUMNS)
        return await self.fetch_page(stmt, limit=limit, offset=offset, scalars=False)

    async def list_moderation_queue(
        self,
        *,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[tuple[Review, User, Game]], int]:
        stmt = (
            select(Review, User, Game)
            .join(User, User.id == Review.user_id)
            .join(Game, Game.id == Review.game_id)
            .where(Review.status == "PENDING")
            .order_by(Review.created_at.asc())
        )
        return await self.fetch_page(stmt, limit=limit, offset=offset, scalars=False)

    async def approved_summary(self, game_id: int) -> tuple[float | None, int]:
        stmt = select(func.avg(Review.rating), func.count(Review.id)).where(
            Review.game_id == game_id,
            Review.status == "APPROVED",
        )
        average, count = (await self.session.execute(stmt)).one()
        return (float(average) if average is not None else None), int(count or 0)

    async def get_for_user(self, *, game_id: int, user_id: int) -> Review | None:
        stmt = select(Review).where(Review.game_id == game_id, Review.user_id == user_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_in_game(self, *, game_id: int, review_id: int, lock: bool = False) -> Review | None:
        stmt = select(Review).where(Review.id == review_id, Review.game_id == game_id)
        if lock:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_vote(self, *, review_id: int, user_id: int) -> ReviewVote | None:
        stmt = select(ReviewVote).where(
            ReviewVote.review_id == review_id,
            ReviewVote.user_id == user_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def set_vote(
        self,
        *,
        review_id: int,
        user_id: int,
        vote_type: str | None,
    ) -> None:
        """Store the caller's vote; ``None`` removes it."""
        existing = await self.get_vote(review_id=review_id, user_id=user_id)
        if vote_type is None:
            if existing is not None:
                await self.session.delete(existing)
        elif existing is None:
            self.session.add(ReviewVote(review_id=review_id, user_id=user_id, vote_type=vote_type))
        else:
            existing.vote_type = vote_type
        await self.session.flush()

    async def shift_vote_counts(self, review: Review, *, up: int, down: int) -> None:
        """Apply vote deltas as ``count = count + delta`` in SQL, floored at zero."""
        stmt = (
            update(Review)
            .where(Review.id == review.id)
            .values(
                upvotes=_floored(Review.upvotes + up),
                downvotes=_floored(Review.downvotes + down),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.refresh(review, ["upvotes", "downvotes"])


def _floored(expression):
    return case((expression < 0, 0), else_=expression)
