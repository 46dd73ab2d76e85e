"""
Repository layer - encapsulates data access for the cache tables.

Repositories never commit; the caller's session_scope decides the
transaction boundary, so multi-table writes are all-or-nothing.
"""

import json
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bggcache.datasource.bgg.types import (
    CollectionEntry,
    CollectionItem,
    CollectionStatus,
    GameRecord,
    GameStatistics,
    HotGame,
    PlayerResult,
    PlayRecord,
)
from bggcache.datastore.models import (
    DEFAULT_GAME_TTL,
    ApiRequestDB,
    CollectionItemDB,
    GameDB,
    HotGameDB,
    PlayDB,
    UserDB,
)

STATUS_COLUMNS = tuple(CollectionStatus.model_fields)


def _load_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse stored JSON column: {e}")
        return default


def _dump_statistics(stats: GameStatistics | None) -> str | None:
    if stats is None:
        return None
    return stats.model_dump_json()


def _load_statistics(raw: str | None) -> GameStatistics | None:
    data = _load_json(raw, None)
    return GameStatistics.model_validate(data) if data else None


class GameRepository:
    """Game details Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, game_id: int) -> GameRecord | None:
        row = await self.session.get(GameDB, game_id)
        return self._to_record(row) if row else None

    async def get_freshness(self, game_id: int) -> tuple[datetime, int] | None:
        """(last_updated, ttl seconds) of a stored game, None when absent."""
        result = await self.session.execute(
            select(GameDB.last_updated, GameDB.ttl).where(GameDB.id == game_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return row.last_updated, row.ttl

    async def upsert(
        self,
        game: GameRecord,
        updated_at: datetime,
        ttl: int | None = None,
    ) -> None:
        """Replace the whole stored record; last_updated moves with it."""
        values = {
            "name": game.name,
            "type": game.type,
            "year_published": game.year_published,
            "description": game.description,
            "min_players": game.min_players,
            "max_players": game.max_players,
            "playing_time": game.playing_time,
            "min_age": game.min_age,
            "thumbnail": game.thumbnail,
            "image": game.image,
            "categories_json": json.dumps(game.categories, ensure_ascii=False),
            "mechanics_json": json.dumps(game.mechanics, ensure_ascii=False),
            "designers_json": json.dumps(game.designers, ensure_ascii=False),
            "artists_json": json.dumps(game.artists, ensure_ascii=False),
            "publishers_json": json.dumps(game.publishers, ensure_ascii=False),
            "stats_json": _dump_statistics(game.statistics),
            "last_updated": updated_at,
            "ttl": ttl or game.ttl or DEFAULT_GAME_TTL,
        }

        row = await self.session.get(GameDB, game.id)
        if row:
            for key, value in values.items():
                setattr(row, key, value)
            logger.debug(f"Updated game {game.id} ({game.name})")
        else:
            self.session.add(GameDB(id=game.id, **values))
            logger.debug(f"Created game {game.id} ({game.name})")

        await self.session.flush()

    async def search(self, query: str, limit: int = 50) -> list[GameRecord]:
        """Substring match on name, ordered by name."""
        result = await self.session.execute(
            select(GameDB)
            .where(GameDB.name.contains(query, autoescape=True))
            .order_by(GameDB.name)
            .limit(limit)
        )
        return [self._to_record(row) for row in result.scalars().all()]

    async def list_all(self, exclude_id: int | None = None) -> list[GameRecord]:
        stmt = select(GameDB)
        if exclude_id is not None:
            stmt = stmt.where(GameDB.id != exclude_id)
        result = await self.session.execute(stmt.order_by(GameDB.id))
        return [self._to_record(row) for row in result.scalars().all()]

    @staticmethod
    def _to_record(row: GameDB) -> GameRecord:
        return GameRecord(
            id=row.id,
            name=row.name,
            type=row.type,
            year_published=row.year_published,
            description=row.description or "",
            min_players=row.min_players,
            max_players=row.max_players,
            playing_time=row.playing_time,
            min_age=row.min_age,
            thumbnail=row.thumbnail,
            image=row.image,
            categories=_load_json(row.categories_json, []),
            mechanics=_load_json(row.mechanics_json, []),
            designers=_load_json(row.designers_json, []),
            artists=_load_json(row.artists_json, []),
            publishers=_load_json(row.publishers_json, []),
            statistics=_load_statistics(row.stats_json),
            last_updated=row.last_updated,
            ttl=row.ttl,
        )


class UserRepository:
    """Synced users Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def touch(self, username: str, synced_at: datetime) -> None:
        user = await self.session.get(UserDB, username)
        if user:
            user.last_synced = synced_at
        else:
            self.session.add(UserDB(username=username, last_synced=synced_at))
        await self.session.flush()


class CollectionRepository:
    """User collection Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def replace(
        self,
        username: str,
        items: list[CollectionItem],
        updated_at: datetime,
    ) -> int:
        """Replace the user's whole collection with `items`."""
        await UserRepository(self.session).touch(username, updated_at)
        await self.session.execute(
            delete(CollectionItemDB).where(CollectionItemDB.username == username)
        )

        for position, item in enumerate(items):
            self.session.add(
                CollectionItemDB(
                    username=username,
                    game_id=item.game_id,
                    position=position,
                    subtype=item.subtype,
                    rating=item.rating,
                    num_plays=item.num_plays,
                    stats_json=_dump_statistics(item.stats),
                    last_updated=updated_at,
                    **item.status.model_dump(),
                )
            )

        await self.session.flush()
        logger.debug(f"Stored {len(items)} collection rows for {username}")
        return len(items)

    async def list_entries(
        self,
        username: str,
        owned: bool | None = None,
        played: bool | None = None,
        rated: bool | None = None,
    ) -> list[CollectionEntry]:
        """
        Stored collection rows whose game record exists, ordered by name.

        Filters are tri-state: None skips the filter, so `rated=False` keeps
        only unrated rows rather than meaning "any rating".
        """
        stmt = (
            select(CollectionItemDB, GameDB)
            .join(GameDB, GameDB.id == CollectionItemDB.game_id)
            .where(CollectionItemDB.username == username)
        )
        if owned is not None:
            stmt = stmt.where(CollectionItemDB.own == owned)
        if played is not None:
            stmt = stmt.where(CollectionItemDB.played == played)
        if rated is True:
            stmt = stmt.where(CollectionItemDB.rating.is_not(None))
        elif rated is False:
            stmt = stmt.where(CollectionItemDB.rating.is_(None))

        stmt = stmt.order_by(GameDB.name, CollectionItemDB.position)
        result = await self.session.execute(stmt)

        return [self._to_entry(item, game) for item, game in result.all()]

    async def count(self, username: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(CollectionItemDB)
            .where(CollectionItemDB.username == username)
        )
        return result.scalar_one()

    @staticmethod
    def _to_entry(item: CollectionItemDB, game: GameDB) -> CollectionEntry:
        return CollectionEntry(
            username=item.username,
            game_id=item.game_id,
            name=game.name,
            subtype=item.subtype,
            year_published=game.year_published,
            image=game.image,
            thumbnail=game.thumbnail,
            status=CollectionStatus(
                **{column: getattr(item, column) for column in STATUS_COLUMNS}
            ),
            rating=item.rating,
            num_plays=item.num_plays,
            stats=_load_statistics(item.stats_json),
            last_updated=item.last_updated,
        )


class PlayRepository:
    """Logged plays Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert_many(
        self,
        username: str,
        plays: list[PlayRecord],
        updated_at: datetime,
    ) -> int:
        """Insert or fully replace each play, keyed by play id."""
        await UserRepository(self.session).touch(username, updated_at)

        for play in plays:
            values = {
                "username": username,
                "game_id": play.game_id,
                "game_name": play.game_name,
                "date": play.date,
                "quantity": play.quantity,
                "comments": play.comments,
                "players_json": json.dumps(
                    [p.model_dump() for p in play.players], ensure_ascii=False
                ),
                "last_updated": updated_at,
            }
            row = await self.session.get(PlayDB, play.id)
            if row:
                for key, value in values.items():
                    setattr(row, key, value)
            else:
                self.session.add(PlayDB(id=play.id, **values))

        await self.session.flush()
        logger.debug(f"Stored {len(plays)} plays for {username}")
        return len(plays)

    async def list_recent(self, username: str, limit: int = 10) -> list[PlayRecord]:
        """Most recent plays first."""
        result = await self.session.execute(
            select(PlayDB)
            .where(PlayDB.username == username)
            .order_by(PlayDB.date.desc(), PlayDB.id.desc())
            .limit(limit)
        )
        return [
            PlayRecord(
                id=row.id,
                username=row.username,
                game_id=row.game_id,
                game_name=row.game_name or "Unknown",
                date=row.date,
                quantity=row.quantity,
                comments=row.comments,
                players=[
                    PlayerResult.model_validate(p)
                    for p in _load_json(row.players_json, [])
                ],
            )
            for row in result.scalars().all()
        ]


class HotGameRepository:
    """Hot list snapshot Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def replace(self, games: list[HotGame], updated_at: datetime) -> int:
        """Swap the snapshot: previous entries are deleted, not merged."""
        await self.session.execute(delete(HotGameDB))
        for game in games:
            self.session.add(
                HotGameDB(
                    id=game.id,
                    rank=game.rank,
                    name=game.name,
                    year_published=game.year_published,
                    thumbnail=game.thumbnail,
                    last_updated=updated_at,
                )
            )
        await self.session.flush()
        return len(games)

    async def list_ranked(self, limit: int = 50) -> list[HotGame]:
        result = await self.session.execute(
            select(HotGameDB).order_by(HotGameDB.rank).limit(limit)
        )
        return [
            HotGame(
                id=row.id,
                rank=row.rank,
                name=row.name,
                year_published=row.year_published,
                thumbnail=row.thumbnail,
            )
            for row in result.scalars().all()
        ]


class RequestLogRepository:
    """Upstream request ledger Repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_request(
        self,
        endpoint: str,
        params: dict[str, Any],
        at: datetime,
    ) -> None:
        self.session.add(
            ApiRequestDB(
                endpoint=endpoint,
                timestamp=at,
                params_json=json.dumps(params, default=str, sort_keys=True),
            )
        )
        await self.session.flush()

    async def count_since(self, since: datetime, endpoint: str | None = None) -> int:
        """Requests logged strictly after `since`, optionally for one endpoint."""
        stmt = (
            select(func.count())
            .select_from(ApiRequestDB)
            .where(ApiRequestDB.timestamp > since)
        )
        if endpoint is not None:
            stmt = stmt.where(ApiRequestDB.endpoint == endpoint)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def prune(self, before: datetime) -> int:
        """Drop ledger rows older than `before`."""
        result = await self.session.execute(
            delete(ApiRequestDB).where(ApiRequestDB.timestamp < before)
        )
        deleted = result.rowcount or 0
        if deleted > 0:
            logger.debug(f"Pruned {deleted} request ledger entries")
        return deleted
