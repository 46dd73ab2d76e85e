"""
Database model definitions.
SQLAlchemy 2.0+ declarative mapping; list/object attributes are JSON text.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from bggcache.utils import utcnow

DEFAULT_GAME_TTL = 7 * 24 * 3600


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models"""

    pass


class GameDB(Base):
    """Cached game details"""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    year_published: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    min_players: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_players: Mapped[int | None] = mapped_column(Integer, nullable=True)
    playing_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    thumbnail: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    image: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    categories_json: Mapped[str] = mapped_column(Text, default="[]")
    mechanics_json: Mapped[str] = mapped_column(Text, default="[]")
    designers_json: Mapped[str] = mapped_column(Text, default="[]")
    artists_json: Mapped[str] = mapped_column(Text, default="[]")
    publishers_json: Mapped[str] = mapped_column(Text, default="[]")
    stats_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    ttl: Mapped[int] = mapped_column(Integer, default=DEFAULT_GAME_TTL, nullable=False)

    def __repr__(self) -> str:
        return f"<Game(id={self.id}, name={self.name})>"


class UserDB(Base):
    """Upstream users whose collection or plays have been synced"""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(255), primary_key=True)
    last_synced: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )


class CollectionItemDB(Base):
    """User collection membership, one row per (user, game)"""

    __tablename__ = "user_collections"

    username: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.username", ondelete="CASCADE"),
        primary_key=True,
    )
    # No FK to games: the row is hidden by the read join until the game exists
    game_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    subtype: Mapped[str | None] = mapped_column(String(50), nullable=True)
    own: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    prev_owned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    for_trade: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    want: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    want_to_play: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    want_to_buy: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    wishlist: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    preordered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    played: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_parts: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    wants_parts: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    num_plays: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stats_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    __table_args__ = (Index("idx_user_collections_username", "username"),)


class PlayDB(Base):
    """Logged plays"""

    __tablename__ = "plays"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    username: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.username", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    game_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    game_name: Mapped[str] = mapped_column(String(500), default="")
    date: Mapped[str | None] = mapped_column(String(20), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    players_json: Mapped[str] = mapped_column(Text, default="[]")
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )


class HotGameDB(Base):
    """Current hot list snapshot"""

    __tablename__ = "hot_games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    year_published: Mapped[int | None] = mapped_column(Integer, nullable=True)
    thumbnail: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )


class ApiRequestDB(Base):
    """Upstream request ledger used for throttling"""

    __tablename__ = "api_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    endpoint: Mapped[str] = mapped_column(String(100), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    params_json: Mapped[str] = mapped_column(Text, default="{}")

    __table_args__ = (
        Index("idx_api_requests_endpoint", "endpoint"),
        Index("idx_api_requests_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ApiRequest(endpoint={self.endpoint}, timestamp={self.timestamp})>"
