"""
Upstream response classification and normalization.

`parse_response` turns a parsed XML document into exactly one tagged
variant per response shape. The `to_*` functions are pure mappings from a
single upstream node to a domain record.
"""

import html
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from bggcache.datasource.bgg.types import (
    CollectionItem,
    CollectionStatus,
    GameRecord,
    GameStatistics,
    HotGame,
    PlayerResult,
    PlayRecord,
    RankEntry,
    SearchHit,
)
from bggcache.services.errors import ResponseParseError, UpstreamError

# Link type tag -> GameRecord attribute
LINK_TYPES = {
    "boardgamecategory": "categories",
    "boardgamemechanic": "mechanics",
    "boardgamedesigner": "designers",
    "boardgameartist": "artists",
    "boardgamepublisher": "publishers",
}

# Collection status attribute -> CollectionStatus field
STATUS_FLAGS = {
    "own": "own",
    "prevowned": "prev_owned",
    "fortrade": "for_trade",
    "want": "want",
    "wanttoplay": "want_to_play",
    "wanttobuy": "want_to_buy",
    "wishlist": "wishlist",
    "preordered": "preordered",
}


class DeferredResponse(BaseModel):
    kind: Literal["deferred"] = "deferred"
    message: str = ""


class SearchResponse(BaseModel):
    kind: Literal["search"] = "search"
    hits: list[SearchHit] = Field(default_factory=list)


class ThingResponse(BaseModel):
    kind: Literal["thing"] = "thing"
    games: list[GameRecord] = Field(default_factory=list)


class CollectionResponse(BaseModel):
    kind: Literal["collection"] = "collection"
    items: list[CollectionItem] = Field(default_factory=list)


class PlaysResponse(BaseModel):
    kind: Literal["plays"] = "plays"
    username: str | None = None
    total: int = 0
    plays: list[PlayRecord] = Field(default_factory=list)


class HotResponse(BaseModel):
    kind: Literal["hot"] = "hot"
    games: list[HotGame] = Field(default_factory=list)


ParsedResponse = Union[
    DeferredResponse,
    SearchResponse,
    ThingResponse,
    CollectionResponse,
    PlaysResponse,
    HotResponse,
]


def is_deferred(doc: dict[str, Any]) -> bool:
    """
    Detect the "request accepted, data not ready" answer.

    Recognised by a missing items container together with a terms-of-use
    marker, or by the bare <message> document sent with HTTP 202.
    """
    if "items" in doc or "plays" in doc:
        return False
    if "@termsofuse" in doc or "termsofuse" in doc:
        return True
    for value in doc.values():
        if isinstance(value, dict) and "@termsofuse" in value:
            return True
    return "message" in doc


def parse_response(endpoint: str, doc: dict[str, Any]) -> ParsedResponse:
    """Classify and normalize a parsed upstream document for an endpoint."""
    if "errors" in doc or "error" in doc:
        raise UpstreamError(_error_message(doc), service_id=endpoint)

    if is_deferred(doc):
        return DeferredResponse(message=_text(doc.get("message")) or "")

    if endpoint == "plays":
        container = _container(doc, "plays", endpoint)
        username = _attr(container, "username")
        return PlaysResponse(
            username=username,
            total=_to_int(_attr(container, "total")) or 0,
            plays=[to_play(p, username) for p in _as_list(container.get("play"))],
        )

    container = _container(doc, "items", endpoint)
    nodes = _as_list(container.get("item"))

    if endpoint == "thing":
        return ThingResponse(games=[to_game(n) for n in nodes])
    if endpoint == "collection":
        return CollectionResponse(items=[to_collection_item(n) for n in nodes])
    if endpoint == "hot":
        return HotResponse(games=[to_hot_game(n) for n in nodes])
    if endpoint == "search":
        return SearchResponse(hits=[to_search_hit(n) for n in nodes])

    raise ResponseParseError(f"No response shape known for endpoint '{endpoint}'")


def to_game(item: dict[str, Any]) -> GameRecord:
    """Normalize a <item> of the thing endpoint."""
    game_id = _to_int(_attr(item, "id"))
    if game_id is None:
        raise ResponseParseError("thing item without an id")

    links: dict[str, list[str]] = {field: [] for field in LINK_TYPES.values()}
    for link in _as_list(item.get("link")):
        field = LINK_TYPES.get(_attr(link, "type") or "")
        value = _attr(link, "value")
        if field and value and value not in links[field]:
            links[field].append(value)

    statistics = None
    ratings = _child(item.get("statistics"), "ratings")
    if ratings is not None:
        statistics = _to_statistics(ratings)

    description = _text(item.get("description")) or "No description available"

    return GameRecord(
        id=game_id,
        type=_attr(item, "type"),
        name=_primary_name(item),
        description=html.unescape(description),
        year_published=_to_int(_value(item.get("yearpublished"))),
        min_players=_to_int(_value(item.get("minplayers"))),
        max_players=_to_int(_value(item.get("maxplayers"))),
        playing_time=_to_int(_value(item.get("playingtime"))),
        min_age=_to_int(_value(item.get("minage"))),
        thumbnail=_text(item.get("thumbnail")),
        image=_text(item.get("image")),
        statistics=statistics,
        **links,
    )


def to_collection_item(item: dict[str, Any]) -> CollectionItem:
    """Normalize a <item> of the collection endpoint."""
    game_id = _to_int(_attr(item, "objectid"))
    if game_id is None:
        raise ResponseParseError("collection item without an objectid")

    status_node = item.get("status") or {}
    flags = {
        field: _attr(status_node, attr) == "1" for attr, field in STATUS_FLAGS.items()
    }

    num_plays = _to_int(_text(item.get("numplays"))) or 0
    flags["played"] = num_plays > 0 or _attr(status_node, "played") == "1"
    flags["has_parts"] = bool(_text(item.get("haspartslist")))
    flags["wants_parts"] = bool(_text(item.get("wantpartslist")))

    rating = None
    stats = None
    rating_node = _child(item.get("stats"), "rating")
    if rating_node is not None:
        rating = _to_float(_attr(rating_node, "value"))
        stats = _to_statistics(rating_node)

    names = _as_list(item.get("name"))
    name = _text(names[0]) if names else None

    return CollectionItem(
        game_id=game_id,
        name=name or "Unknown",
        subtype=_attr(item, "subtype"),
        year_published=_to_int(_text(item.get("yearpublished"))),
        image=_text(item.get("image")),
        thumbnail=_text(item.get("thumbnail")),
        status=CollectionStatus(**flags),
        rating=rating,
        num_plays=num_plays,
        stats=stats,
    )


def to_play(play: dict[str, Any], username: str | None = None) -> PlayRecord:
    """Normalize a <play> of the plays endpoint."""
    play_id = _to_int(_attr(play, "id"))
    items = _as_list(play.get("item"))
    game = items[0] if items else {}
    game_id = _to_int(_attr(game, "objectid"))
    if play_id is None or game_id is None:
        raise ResponseParseError("play without an id or a referenced game")

    players = []
    for player in _as_list(_child(play.get("players"), "player")):
        players.append(
            PlayerResult(
                username=_attr(player, "username") or None,
                name=_attr(player, "name"),
                score=_to_float(_attr(player, "score")),
                win=_attr(player, "win") == "1",
            )
        )

    return PlayRecord(
        id=play_id,
        username=username,
        game_id=game_id,
        game_name=_attr(game, "name") or "Unknown",
        date=_attr(play, "date"),
        quantity=_to_int(_attr(play, "quantity")) or 1,
        comments=_text(play.get("comments")),
        players=players,
    )


def to_hot_game(item: dict[str, Any]) -> HotGame:
    """Normalize a <item> of the hot endpoint."""
    game_id = _to_int(_attr(item, "id"))
    rank = _to_int(_attr(item, "rank"))
    if game_id is None or rank is None:
        raise ResponseParseError("hot item without an id or rank")

    names = _as_list(item.get("name"))
    return HotGame(
        id=game_id,
        rank=rank,
        name=(_value(names[0]) if names else None) or "Unknown",
        year_published=_to_int(_value(item.get("yearpublished"))),
        thumbnail=_value(item.get("thumbnail")),
    )


def to_search_hit(item: dict[str, Any]) -> SearchHit:
    """Normalize a <item> of the search endpoint."""
    game_id = _to_int(_attr(item, "id"))
    if game_id is None:
        raise ResponseParseError("search item without an id")

    return SearchHit(
        id=game_id,
        type=_attr(item, "type"),
        name=_primary_name(item),
        year_published=_to_int(_value(item.get("yearpublished"))),
    )


def _to_statistics(ratings: dict[str, Any]) -> GameStatistics:
    ranks = []
    for rank in _as_list(_child(ratings.get("ranks"), "rank")):
        rank_type = _attr(rank, "type")
        rank_name = _attr(rank, "name")
        if not rank_type or not rank_name:
            continue
        ranks.append(
            RankEntry(
                type=rank_type,
                name=rank_name,
                friendly_name=_attr(rank, "friendlyname"),
                value=_to_int(_attr(rank, "value")),
            )
        )

    return GameStatistics(
        average=_to_float(_value(ratings.get("average"))),
        bayes_average=_to_float(_value(ratings.get("bayesaverage"))),
        num_ratings=_to_int(_value(ratings.get("usersrated"))),
        ranks=ranks,
    )


def _primary_name(item: dict[str, Any]) -> str:
    names = _as_list(item.get("name"))
    for name in names:
        if _attr(name, "type") == "primary" and _value(name):
            return _value(name)
    if names and _value(names[0]):
        return _value(names[0])
    return "Unknown"


def _container(doc: dict[str, Any], tag: str, endpoint: str) -> dict[str, Any]:
    if tag not in doc:
        raise ResponseParseError(
            f"Unexpected '{endpoint}' response: root is {list(doc)}, expected <{tag}>"
        )
    container = doc[tag]
    return container if isinstance(container, dict) else {}


def _error_message(doc: dict[str, Any]) -> str:
    errors = doc.get("errors") or doc.get("error")
    messages = [_attr(errors, "message"), _text(_child(errors, "message"))]
    for error in _as_list(_child(errors, "error")):
        messages.append(_attr(error, "message") or _text(_child(error, "message")))
    messages = [m for m in messages if m]
    if messages:
        return "; ".join(messages)
    return "Upstream returned an error document"


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _child(node: Any, tag: str) -> Any:
    if isinstance(node, dict):
        return node.get(tag)
    return None


def _attr(node: Any, name: str) -> str | None:
    if isinstance(node, dict):
        return node.get(f"@{name}")
    return None


def _text(node: Any) -> str | None:
    if node is None:
        return None
    if isinstance(node, dict):
        node = node.get("#text")
    if isinstance(node, list):
        return _text(node[0]) if node else None
    return node or None


def _value(node: Any) -> str | None:
    """Read <tag value="..."/>, falling back to element text."""
    if isinstance(node, list):
        node = node[0] if node else None
    return _attr(node, "value") or _text(node)


def _to_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _to_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
