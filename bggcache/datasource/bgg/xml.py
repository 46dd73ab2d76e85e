"""
XML to nested dict conversion for BoardGameGeek XML API2 responses.

Attributes become "@name" keys, element text becomes "#text" (or the plain
value when the element has neither attributes nor children). Tags listed in
ALWAYS_LIST are always sequences, so callers never branch on one-vs-many.
"""

import xml.etree.ElementTree as ET
from typing import Any

from bggcache.services.errors import ResponseParseError

ALWAYS_LIST = frozenset({"item", "link", "name", "rank", "poll", "results", "result"})


def parse_xml(text: str, always_list: frozenset[str] = ALWAYS_LIST) -> dict[str, Any]:
    """Parse an XML document into {root_tag: value}."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ResponseParseError(f"Malformed XML from upstream: {e}") from e

    return {root.tag: _element_to_value(root, always_list)}


def _element_to_value(element: ET.Element, always_list: frozenset[str]) -> Any:
    node: dict[str, Any] = {f"@{k}": v for k, v in element.attrib.items()}

    for child in element:
        value = _element_to_value(child, always_list)
        if child.tag in always_list:
            node.setdefault(child.tag, []).append(value)
        elif child.tag in node:
            existing = node[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                node[child.tag] = [existing, value]
        else:
            node[child.tag] = value

    text = (element.text or "").strip()
    if text:
        if not node:
            return text
        node["#text"] = text

    return node or None
