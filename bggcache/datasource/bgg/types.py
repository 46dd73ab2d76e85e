"""
Domain records produced from upstream responses, using Pydantic models.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class RankEntry(BaseModel):
    """One named rank inside a statistics block (e.g. overall, strategy)."""

    type: str
    name: str
    friendly_name: str | None = None
    value: int | None = None  # None when the game is "Not Ranked"


class GameStatistics(BaseModel):
    """Community rating statistics."""

    average: float | None = None
    bayes_average: float | None = None
    num_ratings: int | None = None
    ranks: list[RankEntry] = Field(default_factory=list)


class GameRecord(BaseModel):
    """A cached board game."""

    id: int
    name: str
    type: str | None = None
    year_published: int | None = None
    description: str = ""
    min_players: int | None = None
    max_players: int | None = None
    playing_time: int | None = None
    min_age: int | None = None
    thumbnail: str | None = None
    image: str | None = None
    categories: list[str] = Field(default_factory=list)
    mechanics: list[str] = Field(default_factory=list)
    designers: list[str] = Field(default_factory=list)
    artists: list[str] = Field(default_factory=list)
    publishers: list[str] = Field(default_factory=list)
    statistics: GameStatistics | None = None
    last_updated: datetime | None = None
    ttl: int | None = None


class CollectionStatus(BaseModel):
    """Ownership and engagement flags of a collection entry."""

    own: bool = False
    prev_owned: bool = False
    for_trade: bool = False
    want: bool = False
    want_to_play: bool = False
    want_to_buy: bool = False
    wishlist: bool = False
    preordered: bool = False
    played: bool = False
    has_parts: bool = False
    wants_parts: bool = False


class CollectionItem(BaseModel):
    """A user's collection entry as reported upstream."""

    game_id: int
    name: str = "Unknown"
    subtype: str | None = None
    year_published: int | None = None
    image: str | None = None
    thumbnail: str | None = None
    status: CollectionStatus = Field(default_factory=CollectionStatus)
    rating: float | None = None
    num_plays: int = 0
    stats: GameStatistics | None = None


class CollectionEntry(CollectionItem):
    """A stored collection entry joined with its game record."""

    username: str
    last_updated: datetime | None = None


class PlayerResult(BaseModel):
    """Per-player outcome of a play."""

    username: str | None = None
    name: str | None = None
    score: float | None = None
    win: bool = False


class PlayRecord(BaseModel):
    """A logged play."""

    id: int
    username: str | None = None
    game_id: int
    game_name: str = "Unknown"
    date: str | None = None
    quantity: int = 1
    comments: str | None = None
    players: list[PlayerResult] = Field(default_factory=list)


class HotGame(BaseModel):
    """One entry of the hot list ranking."""

    id: int
    rank: int
    name: str = "Unknown"
    year_published: int | None = None
    thumbnail: str | None = None


class SearchHit(BaseModel):
    """A game returned by the upstream name search."""

    id: int
    name: str = "Unknown"
    type: str | None = None
    year_published: int | None = None
