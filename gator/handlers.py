"""The work done by each command."""

from __future__ import annotations

import http.client
import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from typing import Callable
from uuid import uuid4

from gator.commands import Command, CommandError
from gator.config import Config
from gator.database import DatabaseError, DuplicateError, Queries
from gator.models import Feed, User
from gator.rss import RSSFeed, fetch_feed

logger = logging.getLogger(__name__)

SEPARATOR = "====================================="

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_DURATION_UNITS: dict[str, Fraction] = {
    "ns": Fraction(1, 1000),
    "us": Fraction(1),
    "µs": Fraction(1),
    "μs": Fraction(1),
    "ms": Fraction(1000),
    "s": Fraction(1_000_000),
    "m": Fraction(60_000_000),
    "h": Fraction(3_600_000_000),
}
_SEGMENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_MAX_MICROSECONDS = Fraction(2**63 - 1, 1000)

_RFC1123Z = re.compile(r"[A-Z][a-z]{2}, \d{2} [A-Z][a-z]{2} \d{4} \d{2}:\d{2}:\d{2} [+-]\d{4}")
_INTEGER = re.compile(r"[+-]?\d+")


@dataclass
class State:
    """What every command works with."""

    config: Config
    db: Queries
    fetch: Callable[[str], RSSFeed] = fetch_feed


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1m30s"``, ``"1.5h"`` or ``"300ms"``."""
    body = text
    negative = False
    if body.startswith(("-", "+")):
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f'invalid duration "{text}"')

    total = Fraction(0)
    pos = 0
    while pos < len(body):
        match = _SEGMENT.match(body, pos)
        if match is None:
            raise ValueError(f'invalid duration "{text}"')
        number = match.group(1)
        if number.startswith("."):
            number = "0" + number
        if number.endswith("."):
            number += "0"
        total += Fraction(number) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if total > _MAX_MICROSECONDS:
        raise ValueError(f'invalid duration "{text}"')
    micro = int(total)
    return timedelta(microseconds=-micro if negative else micro)


def _trim(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    width = len(str(unit)) - 1
    return f"{whole}.{str(frac).rjust(width, '0').rstrip('0')}"


def _format_duration(value: timedelta) -> str:
    micro = value // timedelta(microseconds=1)
    if micro == 0:
        return "0s"
    sign = "-" if micro < 0 else ""
    micro = abs(micro)
    if micro < 1000:
        return f"{sign}{micro}µs"
    if micro < 1_000_000:
        return f"{sign}{_trim(micro, 1000)}ms"
    hours, rest = divmod(micro, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    text = sign
    if hours:
        text += f"{hours}h"
    if hours or minutes:
        text += f"{minutes}m"
    return text + f"{_trim(rest, 1_000_000)}s"


def _format_time(value: datetime | None) -> str:
    if value is None:
        value = _ZERO_TIME
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d} "
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.strftime("%z") or "+0000"
    zone = value.tzname() or "UTC"
    return f"{text} {offset} {zone}"


def _parse_pub_date(text: str) -> datetime | None:
    if not _RFC1123Z.fullmatch(text):
        return None
    try:
        return datetime.strptime(text, "%a, %d %b %Y %H:%M:%S %z")
    except ValueError:
        return None


def _now() -> datetime:
    return datetime.now(timezone.utc)


# aggregation


def aggregate(state: State, command: Command) -> None:
    """Scrape the stalest feed now and then once per interval, forever."""
    if not 1 <= len(command.args) <= 2:
        raise CommandError(f"usage: {command.name} <time_between_reqs>")
    try:
        interval = parse_duration(command.args[0])
    except ValueError as exc:
        raise CommandError(f"invalid duration {exc}") from exc
    if interval <= timedelta(0):
        raise CommandError("non-positive interval for ticker")

    logger.info("Collecting feeds every %s...", _format_duration(interval))
    period = interval.total_seconds()
    deadline = time.monotonic() + period
    while True:
        scrape_feeds(state)
        delay = deadline - time.monotonic()
        if delay > 0:
            time.sleep(delay)
            deadline += period
        else:
            deadline += period * (math.floor(-delay / period) + 1)


def scrape_feeds(state: State) -> None:
    """Scrape the feed that was fetched longest ago."""
    try:
        feed = state.db.get_next_feed_to_fetch()
    except DatabaseError as exc:
        logger.info("Couldn't get next feeds to fetch %s", exc)
        return
    logger.info("Found a feed to fetch!")
    scrape_feed(state.db, feed, state.fetch)


def scrape_feed(db: Queries, feed: Feed, fetch: Callable[[str], RSSFeed] = fetch_feed) -> None:
    """Mark ``feed`` fetched, download it and store its new posts."""
    try:
        db.mark_feed_fetched(feed.id)
    except DatabaseError as exc:
        logger.info("Couldn't mark feed %s fetched: %s", feed.name, exc)
        return

    try:
        data = fetch(feed.url)
    except (OSError, ValueError, http.client.HTTPException) as exc:
        logger.info("Couldn't collect feed %s: %s", feed.name, exc)
        return

    for item in data.items:
        now = _now()
        try:
            db.create_post(
                id=uuid4(),
                created_at=now,
                updated_at=now,
                title=item.title,
                url=item.link,
                description=item.description,
                published_at=_parse_pub_date(item.pub_date),
                feed_id=feed.id,
            )
        except DuplicateError:
            continue
        except DatabaseError as exc:
            logger.info("Couldn't create post: %s", exc)
    logger.info("Feed %s collected, %d posts found", feed.name, len(data.items))


# posts


def browse(state: State, command: Command, user: User) -> None:
    """Print the newest posts from the feeds ``user`` follows."""
    limit = 2
    if len(command.args) == 1:
        text = command.args[0]
        if not _INTEGER.fullmatch(text):
            raise CommandError(f'invalid limit: parsing "{text}": invalid syntax')
        limit = int(text)
    try:
        posts = state.db.get_posts_for_user(user.id, limit)
    except DatabaseError as exc:
        raise CommandError(f"couldn't get posts for use: {exc}") from exc

    print(f"Found {len(posts)} posts for user {user.name}:")
    for post in posts:
        published = post.published_at or _ZERO_TIME
        print(f"{published:%a %b} {published.day} from {post.feed_name}")
        print(f"--- {post.title} ---")
        print(f"    {post.description or ''}")
        print(f"Link: {post.url}")
        print(SEPARATOR)


# feeds


def _print_feed(feed: Feed, user: User) -> None:
    print(f"* ID:            {feed.id}")
    print(f"* Created:       {_format_time(feed.created_at)}")
    print(f"* Updated:       {_format_time(feed.updated_at)}")
    print(f"* Name:          {feed.name}")
    print(f"* URL:           {feed.url}")
    print(f"* UserID:        {feed.user_id}")
    print(f"* User:          {user.name}")
    print(f"* LastFetchedAt: {_format_time(feed.last_fetched_at)}")


def _print_feed_follow(user_name: str, feed_name: str) -> None:
    print(f"* User:          {user_name}")
    print(f"* Feed:          {feed_name}")


def add_feed(state: State, command: Command, user: User) -> None:
    """Create a feed owned by ``user`` and follow it."""
    if len(command.args) != 2:
        raise CommandError(f"usage: {command.name} <name> <url>")
    name, url = command.args

    now = _now()
    try:
        feed = state.db.create_feed(uuid4(), now, now, name, url, user.id)
    except DatabaseError as exc:
        raise CommandError(f"couldn't create feed: {exc}") from exc

    now = _now()
    try:
        follow_row = state.db.create_feed_follow(uuid4(), now, now, user.id, feed.id)
    except DatabaseError as exc:
        raise CommandError(f"couldn't create feed follow: {exc}") from exc

    print("Feed created successfully")
    _print_feed(feed, user)
    print()
    print("Feed followed successfully:")
    _print_feed_follow(follow_row.user_name, follow_row.feed_name)
    print(SEPARATOR)


def list_feeds(state: State, command: Command) -> None:
    """Print every feed with the user who added it."""
    try:
        feeds = state.db.get_feeds()
    except DatabaseError as exc:
        raise CommandError(f"couldn't get feeds: {exc}") from exc

    if not feeds:
        print("No feeds found.")
        return

    print(f"Found {len(feeds)} feeds:")
    for feed in feeds:
        try:
            owner = state.db.get_user_by_id(feed.user_id)
        except DatabaseError as exc:
            raise CommandError(f"couldn't get user: {exc}") from exc
        _print_feed(feed, owner)
        print(SEPARATOR)


# follows


def follow(state: State, command: Command, user: User) -> None:
    """Make ``user`` follow the feed with the given URL."""
    if len(command.args) != 1:
        raise CommandError(f"usage: {command.name} <feed_url>")
    try:
        feed = state.db.get_feed_by_url(command.args[0])
    except DatabaseError as exc:
        raise CommandError(f"couldn't get feed: {exc}") from exc

    now = _now()
    try:
        row = state.db.create_feed_follow(uuid4(), now, now, user.id, feed.id)
    except DatabaseError as exc:
        raise CommandError(f"couldn't create feed follow: {exc}") from exc

    print("Feed follow created:")
    _print_feed_follow(row.user_name, row.feed_name)


def list_follows(state: State, command: Command, user: User) -> None:
    """Print the names of the feeds ``user`` follows."""
    try:
        rows = state.db.get_feed_follows_for_user(user.id)
    except DatabaseError as exc:
        raise CommandError(f"couldn't get feed follows: {exc}") from exc
    if not rows:
        print("No feed follows found for this user")
        return

    print(f"Feed follows for user {user.name}:")
    for row in rows:
        print(f"* {row.feed_name}")


def unfollow(state: State, command: Command, user: User) -> None:
    """Stop ``user`` following the feed with the given URL."""
    if len(command.args) != 1:
        raise CommandError(f"usage {command.name} <feed_url>")
    try:
        feed = state.db.get_feed_by_url(command.args[0])
    except DatabaseError as exc:
        raise CommandError(f"couldn't get feed: {exc}") from exc

    try:
        state.db.delete_feed_follow(feed.id, user.id)
    except DatabaseError as exc:
        raise CommandError(f"couldn't delete feed follow: {exc}") from exc

    print(f"{feed.name} unfollowed successfully!")


# users


def login(state: State, command: Command) -> None:
    """Switch the current user to an existing one."""
    if len(command.args) != 1:
        raise CommandError(f"usage: {command.name} <name>")
    name = command.args[0]

    try:
        state.db.get_user(name)
    except DatabaseError as exc:
        raise CommandError(f"couldn't find user: {exc}") from exc

    try:
        state.config.set_user(name)
    except OSError as exc:
        raise CommandError(f"couldn't set current user: {exc}") from exc

    print("User switched successfully")


def register(state: State, command: Command) -> None:
    """Create a user and make it the current one."""
    if len(command.args) != 1:
        raise CommandError(f"usage: {command.name} <name>")
    name = command.args[0]

    now = _now()
    try:
        user = state.db.create_user(uuid4(), now, now, name)
    except DatabaseError as exc:
        raise CommandError(f"couldn't create user: {exc}") from exc

    try:
        state.config.set_user(user.name)
    except OSError as exc:
        raise CommandError(f"couldn't set current user: {exc}") from exc

    print("User created successfully:")
    print(f" * ID:      {user.id}")
    print(f" * Name:    {user.name}")


def reset(state: State, command: Command) -> None:
    """Delete every user and everything that belongs to them."""
    try:
        state.db.delete_users()
    except DatabaseError as exc:
        raise CommandError(f"couldn't reset users: {exc}") from exc
    print("Database reset successfully")


def list_users(state: State, command: Command) -> None:
    """Print every user, marking the current one."""
    try:
        names = state.db.get_users()
    except DatabaseError as exc:
        raise CommandError(f"error retrieving users: {exc}") from exc

    for name in names:
        suffix = " (current)" if name == state.config.current_user_name else ""
        print(f"* {name}{suffix}")