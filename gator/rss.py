"""Fetching and parsing RSS feeds."""

from __future__ import annotations

import html
import urllib.error
import urllib.request
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterator

USER_AGENT = "gator"


@dataclass
class RSSItem:
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RSSFeed:
    title: str = ""
    link: str = ""
    description: str = ""
    items: list[RSSItem] = field(default_factory=list)


def _local_name(element: ET.Element) -> str | None:
    if not isinstance(element.tag, str):
        return None
    return element.tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    return (child for child in element if _local_name(child) == name)


def _chardata(element: ET.Element) -> str:
    return "".join([element.text or ""] + [child.tail or "" for child in element])


def _parse_item(element: ET.Element) -> RSSItem:
    item = RSSItem()
    for child in element:
        name = _local_name(child)
        if name == "title":
            item.title = _chardata(child)
        elif name == "link":
            item.link = _chardata(child)
        elif name == "description":
            item.description = _chardata(child)
        elif name == "pubDate":
            item.pub_date = _chardata(child)
    return item


def parse_feed(data: bytes | str) -> RSSFeed:
    """Parse an RSS document; HTML entities in titles and descriptions are decoded."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise ValueError(f"invalid feed: {exc}") from exc

    feed = RSSFeed()
    for channel in _children(root, "channel"):
        for child in channel:
            name = _local_name(child)
            if name == "title":
                feed.title = _chardata(child)
            elif name == "link":
                feed.link = _chardata(child)
            elif name == "description":
                feed.description = _chardata(child)
            elif name == "item":
                feed.items.append(_parse_item(child))

    feed.title = html.unescape(feed.title)
    feed.description = html.unescape(feed.description)
    for item in feed.items:
        item.title = html.unescape(item.title)
        item.description = html.unescape(item.description)
    return feed


def fetch_feed(url: str, timeout: float = 10.0) -> RSSFeed:
    """Download the feed at ``url`` and parse it."""
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            data = response.read()
    except urllib.error.HTTPError as exc:
        with exc:
            data = exc.read()
    return parse_feed(data)