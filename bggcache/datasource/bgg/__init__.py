"""
BoardGameGeek upstream: transport, XML conversion and response normalization.
"""

from bggcache.datasource.bgg.client import BGGClient
from bggcache.datasource.bgg.responses import (
    CollectionResponse,
    DeferredResponse,
    HotResponse,
    ParsedResponse,
    PlaysResponse,
    SearchResponse,
    ThingResponse,
    parse_response,
)
from bggcache.datasource.bgg.types import (
    CollectionEntry,
    CollectionItem,
    GameRecord,
    HotGame,
    PlayRecord,
    SearchHit,
)
from bggcache.datasource.bgg.xml import parse_xml

__all__ = [
    "BGGClient",
    "CollectionEntry",
    "CollectionItem",
    "CollectionResponse",
    "DeferredResponse",
    "GameRecord",
    "HotGame",
    "HotResponse",
    "ParsedResponse",
    "PlayRecord",
    "PlaysResponse",
    "SearchHit",
    "SearchResponse",
    "ThingResponse",
    "parse_response",
    "parse_xml",
]
