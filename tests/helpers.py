"""Deterministic fakes and XML builders shared by the test modules."""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from bggcache.datasource.bgg.xml import parse_xml
from bggcache.services.errors import UpstreamError

TERMS = "https://boardgamegeek.com/xmlapi/termsofuse"

DEFERRED_XML = (
    "<message>Your request for this collection has been accepted and will be "
    "processed. Please try again later for access.</message>"
)


class FakeClock:
    """Manually advanced clock returning naive UTC datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeSleep:
    """Awaitable sleep that moves the FakeClock instead of waiting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)
        await asyncio.sleep(0)


class FakeTransport:
    """
    Replays scripted XML bodies through the real parse_xml.

    `thing` calls are answered per game id from `games`; every other endpoint
    pops its next scripted body. An Exception instance in a script is raised.
    """

    def __init__(self, clock: FakeClock | None = None):
        self.clock = clock
        self.scripts: dict[str, list[Any]] = defaultdict(list)
        self.games: dict[int, Any] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.call_times: list[datetime] = []
        self.closed = False

    def script(self, endpoint: str, *bodies: Any) -> None:
        self.scripts[endpoint].extend(bodies)

    def add_game(self, game_id: int, body: Any = None, **kwargs) -> None:
        self.games[game_id] = body if body is not None else thing_xml(game_id, **kwargs)

    def calls_to(self, endpoint: str) -> list[dict[str, Any]]:
        return [params for name, params in self.calls if name == endpoint]

    async def fetch(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((endpoint, dict(params)))
        if self.clock is not None:
            self.call_times.append(self.clock())
        await asyncio.sleep(0)

        if endpoint == "thing":
            body = self.games.get(int(params["id"]), f'<items termsofuse="{TERMS}"/>')
        elif self.scripts[endpoint]:
            body = self.scripts[endpoint].pop(0)
        else:
            raise UpstreamError(f"No scripted response for {endpoint}")

        if isinstance(body, Exception):
            raise body
        return parse_xml(body)

    async def close(self) -> None:
        self.closed = True


def thing_xml(
    game_id: int,
    name: str | None = None,
    categories: tuple[str, ...] = (),
    mechanics: tuple[str, ...] = (),
    year: int = 2020,
    description: str = "A game.",
    average: str = "7.5",
) -> str:
    name = name or f"Game {game_id}"
    links = "".join(
        f'<link type="boardgamecategory" id="{i}" value="{c}"/>'
        for i, c in enumerate(categories)
    ) + "".join(
        f'<link type="boardgamemechanic" id="{i}" value="{m}"/>'
        for i, m in enumerate(mechanics)
    )
    return (
        f'<items termsofuse="{TERMS}">'
        f'<item type="boardgame" id="{game_id}">'
        f"<thumbnail>https://cf.geekdo-images.com/{game_id}_t.jpg</thumbnail>"
        f"<image>https://cf.geekdo-images.com/{game_id}.jpg</image>"
        f'<name type="primary" sortindex="1" value="{name}"/>'
        f'<name type="alternate" sortindex="1" value="{name} (alt)"/>'
        f"<description>{description}</description>"
        f'<yearpublished value="{year}"/>'
        '<minplayers value="2"/><maxplayers value="4"/>'
        '<playingtime value="60"/><minage value="10"/>'
        f"{links}"
        "<statistics page=\"1\"><ratings>"
        '<usersrated value="1200"/>'
        f'<average value="{average}"/><bayesaverage value="6.9"/>'
        "<ranks>"
        '<rank type="subtype" id="1" name="boardgame" '
        'friendlyname="Board Game Rank" value="42" bayesaverage="6.9"/>'
        '<rank type="family" id="5497" name="strategygames" '
        'friendlyname="Strategy Game Rank" value="Not Ranked" bayesaverage="N/A"/>'
        "</ranks>"
        "</ratings></statistics>"
        "</item></items>"
    )


def collection_item_xml(
    game_id: int,
    name: str | None = None,
    subtype: str = "boardgame",
    own: bool = True,
    num_plays: int = 0,
    rating: str = "N/A",
) -> str:
    name = name or f"Game {game_id}"
    return (
        f'<item objecttype="thing" objectid="{game_id}" subtype="{subtype}" '
        f'collid="{game_id * 10}">'
        f'<name sortindex="1">{name}</name>'
        "<yearpublished>2019</yearpublished>"
        f'<stats minplayers="2" maxplayers="4"><rating value="{rating}">'
        '<usersrated value="10"/><average value="7.1"/><bayesaverage value="6.5"/>'
        "</rating></stats>"
        f'<status own="{int(own)}" prevowned="0" fortrade="0" want="0" '
        'wanttoplay="0" wanttobuy="0" wishlist="0" preordered="0" '
        'lastmodified="2023-05-01 10:00:00"/>'
        f"<numplays>{num_plays}</numplays>"
        "</item>"
    )


def collection_xml(*items: str) -> str:
    return (
        f'<items totalitems="{len(items)}" termsofuse="{TERMS}" '
        f'pubdate="Mon, 01 Jan 2024 12:00:00 +0000">{"".join(items)}</items>'
    )


def plays_xml(username: str, plays: list[tuple[int, int, str, str]]) -> str:
    """plays: (play_id, game_id, game_name, date)"""
    body = "".join(
        f'<play id="{play_id}" date="{date}" quantity="1" length="45" '
        'incomplete="0" nowinstats="0" location="Home">'
        f'<item name="{game_name}" objecttype="thing" objectid="{game_id}">'
        '<subtypes><subtype value="boardgame"/></subtypes></item>'
        "<comments>Close game</comments>"
        "<players>"
        f'<player username="{username}" userid="1" name="Alice" startposition="1" '
        'color="red" score="42" new="0" rating="0" win="1"/>'
        '<player username="" userid="0" name="Bob" startposition="2" '
        'color="blue" score="" new="1" rating="0" win="0"/>'
        "</players>"
        "</play>"
        for play_id, game_id, game_name, date in plays
    )
    return (
        f'<plays username="{username}" userid="1" total="{len(plays)}" page="1" '
        f'termsofuse="{TERMS}">{body}</plays>'
    )


def hot_xml(*games: tuple[int, str]) -> str:
    """games: (game_id, name), ranked in the given order"""
    body = "".join(
        f'<item id="{game_id}" rank="{rank}">'
        f'<thumbnail value="https://cf.geekdo-images.com/{game_id}_t.jpg"/>'
        f'<name value="{name}"/><yearpublished value="2023"/>'
        "</item>"
        for rank, (game_id, name) in enumerate(games, start=1)
    )
    return f'<items termsofuse="{TERMS}">{body}</items>'


def search_xml(*games: tuple[int, str]) -> str:
    body = "".join(
        f'<item type="boardgame" id="{game_id}">'
        f'<name type="primary" value="{name}"/><yearpublished value="2015"/>'
        "</item>"
        for game_id, name in games
    )
    return f'<items total="{len(games)}" termsofuse="{TERMS}">{body}</items>'


def errors_xml(message: str) -> str:
    return f"<errors><error><message>{message}</message></error></errors>"
