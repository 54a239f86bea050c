from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ReviewResponse(BaseModel):
    id: int
    game_id: int
    user_id: int
    author_name: str | None = None
    author_image: str | None = None
    rating: int
    title: str | None = None
    content: str
    is_recommended: bool
    is_verified_purchase: bool
    status: str
    upvotes: int
    downvotes: int
    created_at: datetime
    updated_at: datetime


class ModerationReviewResponse(ReviewResponse):
    game_title: str


class ReviewCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rating: int = Field(ge=1, le=5)
    title: str | None = Field(default=None, max_length=100)
    content: str = Field(min_length=10, max_length=5000)
    is_recommended: bool = True


class ReviewUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rating: int | None = Field(default=None, ge=1, le=5)
    title: str | None = Field(default=None, max_length=100)
    content: str | None = Field(default=None, min_length=10, max_length=5000)
    is_recommended: bool | None = None
    status: Literal["PENDING", "APPROVED", "REJECTED"] | None = None


class ReviewVoteRequest(BaseModel):
    vote_type: Literal["upvote", "downvote", "remove"]


class ReviewVoteResponse(BaseModel):
    review: ReviewResponse
    previous_vote: str | None = None
    vote: str | None = None


class ModerationDecisionRequest(BaseModel):
    status: Literal["APPROVED", "REJECTED"]
