from __future__ import annotations

from enum import StrEnum


class ReviewStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class VoteType(StrEnum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"
    REMOVE = "remove"


class ReviewPolicy:
    MIN_RATING = 1
    MAX_RATING = 5
    AUTHOR_EDITABLE_FIELDS = frozenset({"title", "content", "rating", "is_recommended"})

    @staticmethod
    def vote_deltas(previous: str | None, requested: str) -> tuple[int, int]:
        """Counter changes (upvotes, downvotes) for moving from ``previous`` to ``requested``.

        ``previous`` is the caller's stored vote, or None when they never voted.
        Repeating the same vote is a no-op.
        """
        target = None if requested == VoteType.REMOVE else requested
        if previous == target:
            return 0, 0
        up = down = 0
        if previous == VoteType.UPVOTE:
            up -= 1
        elif previous == VoteType.DOWNVOTE:
            down -= 1
        if target == VoteType.UPVOTE:
            up += 1
        elif target == VoteType.DOWNVOTE:
            down += 1
        return up, down

    @classmethod
    def rating_is_valid(cls, rating: int) -> bool:
        return cls.MIN_RATING <= rating <= cls.MAX_RATING
