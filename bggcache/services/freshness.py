"""
FreshnessPolicy - decides whether a cached game must be refetched.

Advisory only: two callers may both decide to refresh the same game, which
is harmless because game writes are idempotent upserts.
"""

from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bggcache.datastore.engine import session_scope
from bggcache.datastore.repositories import GameRepository
from bggcache.utils import utcnow


def is_stale(last_updated: datetime | None, ttl_seconds: int, now: datetime) -> bool:
    """True once `now` is past last_updated + ttl; a missing stamp is stale."""
    if last_updated is None:
        return True
    return now > last_updated + timedelta(seconds=ttl_seconds)


class FreshnessPolicy:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def needs_refresh(self, game_id: int) -> bool:
        """No stored record, or a record older than its own ttl."""
        async with session_scope(self._session_factory) as session:
            stamp = await GameRepository(session).get_freshness(game_id)

        if stamp is None:
            return True

        last_updated, ttl = stamp
        return is_stale(last_updated, ttl, self._clock())
