"""
Synchronizer - fetches upstream data through the RequestQueue, normalizes it
and writes it through the repositories.

Each sync follows the same shape: one or more typed fetches (retried while
the upstream answers "accepted, try later"), one atomic store write, then a
cascade that refreshes every referenced game whose cached copy is stale.
"""

import asyncio
import functools
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bggcache.datasource.bgg.responses import (
    CollectionResponse,
    DeferredResponse,
    HotResponse,
    PlaysResponse,
    SearchResponse,
    ThingResponse,
    parse_response,
)
from bggcache.datasource.bgg.types import CollectionItem, HotGame, PlayRecord, SearchHit
from bggcache.datastore.engine import session_scope
from bggcache.datastore.repositories import (
    CollectionRepository,
    GameRepository,
    HotGameRepository,
    PlayRepository,
)
from bggcache.services.errors import RequestDeferredError, ResponseParseError
from bggcache.services.freshness import FreshnessPolicy
from bggcache.services.queue import RequestQueue
from bggcache.settings import global_settings
from bggcache.utils import utcnow

R = TypeVar("R")

# The collection is fetched in two typed halves; base games first
COLLECTION_SUBFETCHES = (
    {"excludesubtype": "boardgameexpansion"},
    {"subtype": "boardgameexpansion"},
)


def detached(func):
    """
    Run a sync operation as its own task.

    A caller that goes away stops waiting, but the fetch and the store write
    still complete; the result is simply not delivered.
    """

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        task = asyncio.create_task(func(self, *args, **kwargs))
        self._background.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    return wrapper


class Synchronizer:
    def __init__(
        self,
        queue: RequestQueue,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        freshness: FreshnessPolicy | None = None,
        *,
        deferred_max_attempts: int | None = None,
        deferred_retry_delay: float | None = None,
        cascade_delay: float | None = None,
        game_ttl: int | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.queue = queue
        self._session_factory = session_factory
        self.freshness = freshness or FreshnessPolicy(session_factory, clock=clock)
        self._max_attempts = (
            deferred_max_attempts or global_settings.deferred_max_attempts
        )
        self._retry_delay = (
            deferred_retry_delay
            if deferred_retry_delay is not None
            else global_settings.deferred_retry_delay_seconds
        )
        self._cascade_delay = (
            cascade_delay
            if cascade_delay is not None
            else global_settings.cascade_delay_seconds
        )
        self._game_ttl = game_ttl or global_settings.game_ttl_seconds
        self._clock = clock
        self._sleep = sleep
        self._background: set[asyncio.Task] = set()

    @detached
    async def sync_game(self, game_id: int) -> bool:
        """
        Refresh one game's details.

        Returns:
            False when the upstream knows no such game, True once stored
        """
        logger.info(f"Syncing details for game ID: {game_id}")
        params = {"id": game_id, "stats": 1}
        response = await self._fetch("thing", params, ThingResponse)

        if not response.games:
            logger.warning(f"No game found with ID {game_id}.")
            return False

        game = response.games[0]
        async with session_scope(self._session_factory) as session:
            await GameRepository(session).upsert(game, self._clock(), self._game_ttl)

        logger.info(f"Successfully synced details for game {game.name} (ID: {game_id})")
        return True

    @detached
    async def sync_collection(self, username: str) -> list[CollectionItem]:
        """
        Replace a user's stored collection with the upstream one.

        Raises:
            RequestDeferredError: If either half stays queued upstream
        """
        logger.info(f"Syncing collection for user: {username}")

        items: list[CollectionItem] = []
        seen: set[int] = set()
        for subfetch in COLLECTION_SUBFETCHES:
            params = {"username": username, "stats": 1, **subfetch}
            response = await self._fetch("collection", params, CollectionResponse)
            for item in response.items:
                if item.game_id in seen:
                    continue
                seen.add(item.game_id)
                items.append(item)

        async with session_scope(self._session_factory) as session:
            await CollectionRepository(session).replace(username, items, self._clock())

        await self.refresh_stale_games(item.game_id for item in items)

        logger.info(f"Successfully synced {len(items)} games for user {username}")
        return items

    @detached
    async def sync_plays(self, username: str, max_plays: int = 100) -> list[PlayRecord]:
        """Upsert the user's most recent plays, at most `max_plays` of them."""
        logger.info(f"Syncing plays for user: {username}")
        response = await self._fetch(
            "plays", {"username": username, "subtype": "boardgame"}, PlaysResponse
        )

        plays = response.plays[:max_plays]
        if not plays:
            logger.info(f"No plays found for user {username}.")
            return []

        async with session_scope(self._session_factory) as session:
            await PlayRepository(session).upsert_many(username, plays, self._clock())

        await self.refresh_stale_games(play.game_id for play in plays)

        logger.info(f"Successfully synced {len(plays)} plays for user {username}")
        return plays

    @detached
    async def sync_hot_list(self) -> list[HotGame]:
        """Replace the hot list snapshot with the current upstream ranking."""
        logger.info("Syncing hot games")
        response = await self._fetch("hot", {"type": "boardgame"}, HotResponse)

        if not response.games:
            logger.warning("Upstream hot list is empty, keeping the previous snapshot")
            return []

        async with session_scope(self._session_factory) as session:
            await HotGameRepository(session).replace(response.games, self._clock())

        await self.refresh_stale_games(game.id for game in response.games)

        logger.info(f"Successfully synced {len(response.games)} hot games")
        return response.games

    async def search(self, query: str, exact: bool = False) -> list[SearchHit]:
        """Upstream name search; nothing is stored."""
        params: dict[str, Any] = {"query": query, "type": "boardgame"}
        if exact:
            params["exact"] = 1
        response = await self._fetch("search", params, SearchResponse)
        return response.hits

    async def refresh_stale_games(self, game_ids: Iterable[int]) -> int:
        """
        Refresh each distinct game whose cached copy is missing or expired.

        Failures are logged and skipped, never raised: the operation that
        discovered these games has already succeeded.
        """
        refreshed = 0
        for game_id in dict.fromkeys(game_ids):
            try:
                if not await self.freshness.needs_refresh(game_id):
                    continue
                if await self.sync_game(game_id):
                    refreshed += 1
            except Exception as e:
                logger.warning(f"Cascade refresh of game {game_id} failed: {e}")
            await self._sleep(self._cascade_delay)

        return refreshed

    async def _fetch(
        self, endpoint: str, params: dict[str, Any], expected: type[R]
    ) -> R:
        """
        Submit through the queue, retrying while the upstream defers.

        Raises:
            RequestDeferredError: After `deferred_max_attempts` deferred answers
            UpstreamError: Transport, HTTP or parse failures, unchanged
        """
        for attempt in range(1, self._max_attempts + 1):
            doc = await self.queue.submit(endpoint, params)
            response = parse_response(endpoint, doc)

            if not isinstance(response, DeferredResponse):
                if not isinstance(response, expected):
                    raise ResponseParseError(
                        f"Expected {expected.__name__} from '{endpoint}', "
                        f"got {type(response).__name__}"
                    )
                return response

            logger.warning(
                f"{endpoint} request {params} queued upstream "
                f"(attempt {attempt}/{self._max_attempts})"
            )
            if attempt < self._max_attempts:
                await self._sleep(self._retry_delay)

        raise RequestDeferredError(endpoint, self._max_attempts, service_id="bgg")

    async def close(self) -> None:
        await self.queue.close()

    async def drain(self) -> None:
        """Wait for sync operations whose callers stopped waiting."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _forget(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Sync task {task.get_coro().__name__} failed: {error}")
