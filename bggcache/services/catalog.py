"""
GameCatalog - the operations exposed to the tool dispatch shell.

Reads are served from the local store; the Synchronizer is invoked when a
record is missing, stale, or a refresh is forced.
"""

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bggcache.datasource.bgg.client import BGGClient
from bggcache.datasource.bgg.types import (
    CollectionEntry,
    GameRecord,
    HotGame,
    PlayRecord,
)
from bggcache.datastore.engine import session_scope
from bggcache.datastore.repositories import (
    CollectionRepository,
    GameRepository,
    HotGameRepository,
    PlayRepository,
)
from bggcache.services.errors import ServiceError, describe_error
from bggcache.services.queue import RequestQueue, Transport
from bggcache.services.similarity import rank_similar
from bggcache.services.sync import Synchronizer

SEARCH_LIMIT = 50
HOT_LIST_LIMIT = 50
REMOTE_SEARCH_LIMIT = 10


class CollectionResult(BaseModel):
    """Collection lookup outcome; failures are a status, not an exception."""

    status: Literal["success", "queued", "error"]
    message: str | None = None
    items: list[CollectionEntry] = Field(default_factory=list)


class GameCatalog:
    def __init__(
        self,
        synchronizer: Synchronizer,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.sync = synchronizer
        self._session_factory = session_factory

    # Games

    async def ensure_game_fresh(
        self, game_id: int, force: bool = False
    ) -> GameRecord | None:
        """Stored game, refreshed first when forced or stale; None if unknown."""
        if force or await self.sync.freshness.needs_refresh(game_id):
            await self.sync.sync_game(game_id)

        async with session_scope(self._session_factory) as session:
            return await GameRepository(session).get(game_id)

    async def search_games(
        self,
        query: str,
        limit: int = SEARCH_LIMIT,
        remote: bool = False,
        exact: bool = False,
    ) -> list[GameRecord]:
        """
        Substring search on cached game names, ordered by name.

        With `remote`, an empty local result falls back to the upstream
        search and caches the first hits; `exact` asks the upstream for whole-name
        matches only.
        """
        limit = max(1, min(limit, SEARCH_LIMIT))
        async with session_scope(self._session_factory) as session:
            games = await GameRepository(session).search(query, limit)

        if games or not remote:
            return games

        logger.info(f"No local results for '{query}', searching upstream")
        hits = await self.sync.search(query, exact=exact)
        found: list[GameRecord] = []
        for hit in hits[: min(limit, REMOTE_SEARCH_LIMIT)]:
            game = await self.ensure_game_fresh(hit.id)
            if game:
                found.append(game)
        return found

    async def find_similar(
        self, game_id: int, limit: int = 10
    ) -> list[tuple[GameRecord, float]]:
        """Cached games most similar to `game_id`, best first."""
        reference = await self.ensure_game_fresh(game_id)
        if reference is None:
            logger.warning(f"No game found with ID {game_id}.")
            return []

        async with session_scope(self._session_factory) as session:
            candidates = await GameRepository(session).list_all(exclude_id=game_id)

        return rank_similar(reference, candidates, limit)

    # Collections

    async def get_or_sync_collection(
        self,
        username: str,
        owned: bool | None = None,
        played: bool | None = None,
        rated: bool | None = None,
        force: bool = False,
    ) -> CollectionResult:
        """Stored collection, synced first when forced or nothing is stored."""
        try:
            if force or not await self._has_collection(username):
                await self.sync.sync_collection(username)
            items = await self._read_collection(username, owned, played, rated)
        except ServiceError as e:
            return self._failure(username, e)

        if not items:
            return CollectionResult(
                status="success",
                message=(
                    f"No games found in {username}'s collection "
                    "matching the specified filters."
                ),
            )
        return CollectionResult(status="success", items=items)

    async def sync_collection(self, username: str) -> CollectionResult:
        """Unconditional collection sync returning the stored result."""
        return await self.get_or_sync_collection(username, force=True)

    # Plays

    async def get_or_sync_plays(
        self,
        username: str,
        max_plays: int = 10,
        force: bool = False,
    ) -> list[PlayRecord]:
        if force:
            await self.sync.sync_plays(username, max_plays)

        plays = await self._read_plays(username, max_plays)
        if plays or force:
            return plays

        await self.sync.sync_plays(username, max_plays)
        return await self._read_plays(username, max_plays)

    async def sync_plays(self, username: str, max_plays: int = 100) -> list[PlayRecord]:
        """Unconditional plays sync returning the stored plays."""
        return await self.get_or_sync_plays(username, max_plays, force=True)

    # Hot list

    async def get_or_sync_hot_list(
        self, limit: int = HOT_LIST_LIMIT
    ) -> list[HotGame]:
        """Hot list, always refreshed because the ranking changes constantly."""
        limit = max(1, min(limit, HOT_LIST_LIMIT))
        await self.sync.sync_hot_list()
        async with session_scope(self._session_factory) as session:
            return await HotGameRepository(session).list_ranked(limit)

    async def _has_collection(self, username: str) -> bool:
        async with session_scope(self._session_factory) as session:
            return await CollectionRepository(session).count(username) > 0

    async def _read_collection(
        self,
        username: str,
        owned: bool | None,
        played: bool | None,
        rated: bool | None,
    ) -> list[CollectionEntry]:
        async with session_scope(self._session_factory) as session:
            return await CollectionRepository(session).list_entries(
                username, owned=owned, played=played, rated=rated
            )

    async def _read_plays(self, username: str, limit: int) -> list[PlayRecord]:
        async with session_scope(self._session_factory) as session:
            return await PlayRepository(session).list_recent(username, limit)

    @staticmethod
    def _failure(username: str, error: ServiceError) -> CollectionResult:
        status, message = describe_error(error)
        if status == "queued":
            logger.warning(f"Collection for {username} still queued upstream")
        else:
            logger.error(f"Error retrieving collection for {username}: {error}")
        return CollectionResult(status=status, message=message)

    async def close(self) -> None:
        await self.sync.close()


def create_catalog(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    transport: Transport | None = None,
) -> GameCatalog:
    """Wire transport, queue, freshness policy and synchronizer together."""
    transport = transport or BGGClient()
    queue = RequestQueue(transport, session_factory)
    synchronizer = Synchronizer(queue, session_factory)
    return GameCatalog(synchronizer, session_factory)
