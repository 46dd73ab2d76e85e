import pytest
import pytest_asyncio

from bggcache.datastore.engine import close_db, get_session_factory, init_db
from bggcache.services.catalog import GameCatalog
from bggcache.services.queue import RequestQueue
from bggcache.services.sync import Synchronizer
from tests.helpers import FakeClock, FakeSleep, FakeTransport


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh on-disk SQLite store per test."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path}/test.sqlite")
    yield get_session_factory()
    await close_db()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)


@pytest.fixture
def transport(clock):
    return FakeTransport(clock)


@pytest_asyncio.fixture
async def queue(db, transport, clock, fake_sleep):
    """Queue with room for every request a single test makes."""
    request_queue = RequestQueue(
        transport,
        db,
        max_requests=100,
        window_seconds=60,
        backoff_seconds=5,
        interval_seconds=1,
        clock=clock,
        sleep=fake_sleep,
    )
    yield request_queue
    await request_queue.close()


@pytest.fixture
def synchronizer(queue, db, clock, fake_sleep):
    return Synchronizer(
        queue,
        db,
        deferred_max_attempts=3,
        deferred_retry_delay=5,
        cascade_delay=0.1,
        game_ttl=7 * 24 * 3600,
        clock=clock,
        sleep=fake_sleep,
    )


@pytest.fixture
def catalog(synchronizer, db):
    return GameCatalog(synchronizer, db)
