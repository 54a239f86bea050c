from datetime import datetime

from pydantic import BaseModel, Field

from incubus.api.schemas.games import GameResponse


class WishlistEntryResponse(BaseModel):
    game_id: int
    added_at: datetime
    game: GameResponse


class WishlistChangeResponse(BaseModel):
    game_id: int
    changed: bool


class WishlistReplaceRequest(BaseModel):
    game_ids: list[int] = Field(default_factory=list, max_length=500)


class WishlistIdsResponse(BaseModel):
    game_ids: list[int]
