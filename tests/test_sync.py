"""Synchronizer: fetch, store, cascade."""

import asyncio
from datetime import timedelta

import pytest

from bggcache.datastore.engine import session_scope
from bggcache.datastore.repositories import (
    CollectionRepository,
    GameRepository,
    HotGameRepository,
    PlayRepository,
)
from bggcache.services.errors import RequestDeferredError, UpstreamError
from tests.helpers import (
    DEFERRED_XML,
    collection_item_xml,
    collection_xml,
    hot_xml,
    plays_xml,
    search_xml,
)


async def stored_game_ids(db) -> list[int]:
    async with session_scope(db) as session:
        return [g.id for g in await GameRepository(session).list_all()]


class TestSyncGame:
    @pytest.mark.asyncio
    async def test_stores_game(self, db, synchronizer, transport, clock):
        transport.add_game(13, name="Catan")

        assert await synchronizer.sync_game(13) is True

        async with session_scope(db) as session:
            game = await GameRepository(session).get(13)
        assert game.name == "Catan"
        assert game.last_updated == clock()
        assert transport.calls_to("thing") == [{"id": 13, "stats": 1}]

    @pytest.mark.asyncio
    async def test_unknown_game_is_not_an_error(self, db, synchronizer):
        assert await synchronizer.sync_game(999999) is False
        assert await stored_game_ids(db) == []


class TestSyncCollection:
    @pytest.mark.asyncio
    async def test_merges_both_halves_and_cascades(self, db, synchronizer, transport):
        transport.script(
            "collection",
            collection_xml(collection_item_xml(1), collection_item_xml(2)),
            collection_xml(collection_item_xml(3, subtype="boardgameexpansion")),
        )
        for game_id in (1, 2, 3):
            transport.add_game(game_id)

        items = await synchronizer.sync_collection("alice")

        assert [i.game_id for i in items] == [1, 2, 3]
        async with session_scope(db) as session:
            entries = await CollectionRepository(session).list_entries("alice")
        assert sorted(e.game_id for e in entries) == [1, 2, 3]
        assert await stored_game_ids(db) == [1, 2, 3]

        first, second = transport.calls_to("collection")
        assert first["excludesubtype"] == "boardgameexpansion"
        assert second["subtype"] == "boardgameexpansion"

    @pytest.mark.asyncio
    async def test_fresh_games_are_not_refetched(self, db, synchronizer, transport):
        transport.add_game(1)
        await synchronizer.sync_game(1)
        transport.script(
            "collection",
            collection_xml(collection_item_xml(1), collection_item_xml(2)),
            collection_xml(),
        )
        transport.add_game(2)

        await synchronizer.sync_collection("alice")

        assert [p["id"] for p in transport.calls_to("thing")] == [1, 2]

    @pytest.mark.asyncio
    async def test_stale_games_are_refetched(
        self, db, synchronizer, transport, clock
    ):
        transport.add_game(1)
        await synchronizer.sync_game(1)
        clock.advance(timedelta(days=8).total_seconds())
        transport.script(
            "collection", collection_xml(collection_item_xml(1)), collection_xml()
        )

        await synchronizer.sync_collection("alice")

        assert [p["id"] for p in transport.calls_to("thing")] == [1, 1]

    @pytest.mark.asyncio
    async def test_deferred_three_times_raises(
        self, db, synchronizer, transport, fake_sleep
    ):
        transport.script("collection", DEFERRED_XML, DEFERRED_XML, DEFERRED_XML)

        with pytest.raises(RequestDeferredError) as exc_info:
            await synchronizer.sync_collection("alice")

        assert exc_info.value.attempts == 3
        assert exc_info.value.endpoint == "collection"
        assert len(transport.calls_to("collection")) == 3
        assert fake_sleep.calls.count(5) == 2
        async with session_scope(db) as session:
            assert await CollectionRepository(session).count("alice") == 0

    @pytest.mark.asyncio
    async def test_deferred_then_ready(self, db, synchronizer, transport):
        transport.script(
            "collection",
            DEFERRED_XML,
            collection_xml(collection_item_xml(1)),
            collection_xml(),
        )
        transport.add_game(1)

        items = await synchronizer.sync_collection("alice")

        assert [i.game_id for i in items] == [1]
        assert len(transport.calls_to("collection")) == 3

    @pytest.mark.asyncio
    async def test_cascade_failure_does_not_abort(self, db, synchronizer, transport):
        transport.script(
            "collection",
            collection_xml(collection_item_xml(1), collection_item_xml(2)),
            collection_xml(),
        )
        transport.add_game(1, UpstreamError("HTTP 500: oops"))
        transport.add_game(2)

        items = await synchronizer.sync_collection("alice")

        assert len(items) == 2
        assert await stored_game_ids(db) == [2]
        async with session_scope(db) as session:
            repo = CollectionRepository(session)
            assert await repo.count("alice") == 2
            assert [e.game_id for e in await repo.list_entries("alice")] == [2]


class TestSyncPlays:
    @pytest.mark.asyncio
    async def test_truncates_and_cascades(self, db, synchronizer, transport):
        transport.script(
            "plays",
            plays_xml(
                "alice",
                [
                    (3, 30, "Thirty", "2024-03-01"),
                    (2, 20, "Twenty", "2024-02-01"),
                    (1, 10, "Ten", "2024-01-01"),
                ],
            ),
        )
        for game_id in (10, 20, 30):
            transport.add_game(game_id)

        plays = await synchronizer.sync_plays("alice", max_plays=2)

        assert [p.id for p in plays] == [3, 2]
        async with session_scope(db) as session:
            stored = await PlayRepository(session).list_recent("alice")
        assert [p.id for p in stored] == [3, 2]
        assert sorted(p["id"] for p in transport.calls_to("thing")) == [20, 30]

    @pytest.mark.asyncio
    async def test_no_plays(self, db, synchronizer, transport):
        transport.script("plays", plays_xml("alice", []))

        assert await synchronizer.sync_plays("alice") == []
        assert transport.calls_to("thing") == []


class TestSyncHotList:
    @pytest.mark.asyncio
    async def test_second_sync_replaces_snapshot(self, db, synchronizer, transport):
        transport.script(
            "hot",
            hot_xml((1, "One"), (2, "Two")),
            hot_xml((3, "Three"), (4, "Four")),
        )
        for game_id in (1, 2, 3, 4):
            transport.add_game(game_id)

        await synchronizer.sync_hot_list()
        await synchronizer.sync_hot_list()

        async with session_scope(db) as session:
            ranked = await HotGameRepository(session).list_ranked()
        assert [(g.rank, g.id) for g in ranked] == [(1, 3), (2, 4)]
        assert await stored_game_ids(db) == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_empty_upstream_list_keeps_snapshot(
        self, db, synchronizer, transport
    ):
        transport.script("hot", hot_xml((1, "One")), hot_xml())
        transport.add_game(1)

        await synchronizer.sync_hot_list()
        assert await synchronizer.sync_hot_list() == []

        async with session_scope(db) as session:
            ranked = await HotGameRepository(session).list_ranked()
        assert [g.id for g in ranked] == [1]


class TestSearch:
    @pytest.mark.asyncio
    async def test_remote_search_stores_nothing(self, db, synchronizer, transport):
        transport.script("search", search_xml((13, "Catan")))

        hits = await synchronizer.search("Catan", exact=True)

        assert [h.id for h in hits] == [13]
        assert transport.calls_to("search")[0]["exact"] == 1
        assert await stored_game_ids(db) == []


class TestAbandonedCaller:
    @pytest.mark.asyncio
    async def test_store_write_survives_cancelled_caller(
        self, db, synchronizer, transport
    ):
        transport.add_game(13, name="Catan")

        caller = asyncio.create_task(synchronizer.sync_game(13))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        await synchronizer.drain()

        assert await stored_game_ids(db) == [13]
        assert len(transport.calls_to("thing")) == 1
