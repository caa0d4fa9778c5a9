"""Storage of users, feeds, follows and posts in SQLite."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Sequence, TypeVar
from uuid import UUID

from gator.models import Feed, FeedFollowRow, Post, PostWithFeed, User

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS feeds (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    last_fetched_at TEXT
);
CREATE TABLE IF NOT EXISTS feed_follows (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    feed_id TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    UNIQUE (user_id, feed_id)
);
CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    title TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    description TEXT,
    published_at TEXT,
    feed_id TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE
);
"""

_USER_COLUMNS = "id, created_at, updated_at, name"
_FEED_COLUMNS = "id, created_at, updated_at, name, url, user_id, last_fetched_at"

_SELECT_FOLLOW_ROW = """
SELECT feed_follows.id, feed_follows.created_at, feed_follows.updated_at,
       feed_follows.user_id, feed_follows.feed_id,
       feeds.name AS feed_name, users.name AS user_name
FROM feed_follows
INNER JOIN feeds ON feed_follows.feed_id = feeds.id
INNER JOIN users ON feed_follows.user_id = users.id
"""


class DatabaseError(Exception):
    """A query failed."""


class NotFoundError(DatabaseError, LookupError):
    """A query that must return a row returned none."""


class DuplicateError(DatabaseError):
    """An insert would break a uniqueness constraint."""


def _encode_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _encode_optional_time(value: datetime | None) -> str | None:
    return None if value is None else _encode_time(value)


def _decode_time(text: str) -> datetime:
    return datetime.fromisoformat(text)


def _decode_optional_time(text: str | None) -> datetime | None:
    return None if text is None else _decode_time(text)


def _user(row: Sequence[Any]) -> User:
    return User(UUID(row[0]), _decode_time(row[1]), _decode_time(row[2]), row[3])


def _feed(row: Sequence[Any]) -> Feed:
    return Feed(
        id=UUID(row[0]),
        created_at=_decode_time(row[1]),
        updated_at=_decode_time(row[2]),
        name=row[3],
        url=row[4],
        user_id=UUID(row[5]),
        last_fetched_at=_decode_optional_time(row[6]),
    )


def _follow_row(row: Sequence[Any]) -> FeedFollowRow:
    return FeedFollowRow(
        id=UUID(row[0]),
        created_at=_decode_time(row[1]),
        updated_at=_decode_time(row[2]),
        user_id=UUID(row[3]),
        feed_id=UUID(row[4]),
        feed_name=row[5],
        user_name=row[6],
    )


def _post(row: Sequence[Any]) -> Post:
    return Post(
        id=UUID(row[0]),
        created_at=_decode_time(row[1]),
        updated_at=_decode_time(row[2]),
        title=row[3],
        url=row[4],
        description=row[5],
        published_at=_decode_optional_time(row[6]),
        feed_id=UUID(row[7]),
    )


def _post_with_feed(row: Sequence[Any]) -> PostWithFeed:
    return PostWithFeed(
        id=UUID(row[0]),
        created_at=_decode_time(row[1]),
        updated_at=_decode_time(row[2]),
        title=row[3],
        url=row[4],
        description=row[5],
        published_at=_decode_optional_time(row[6]),
        feed_id=UUID(row[7]),
        feed_name=row[8],
    )


class Queries:
    """Typed queries over an SQLite connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._depth = 0
        try:
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc

    def __enter__(self) -> Queries:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Queries]:
        """Run the enclosed queries atomically; roll back on any exception."""
        outer = self._depth == 0
        if outer:
            try:
                if self._conn.in_transaction:
                    self._conn.commit()
                self._conn.execute("BEGIN")
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if outer:
                self._conn.rollback()
            raise
        self._depth -= 1
        if outer:
            try:
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise DatabaseError(str(exc)) from exc

    @contextmanager
    def _translated(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as exc:
            self._abort()
            if "UNIQUE" in str(exc):
                raise DuplicateError(str(exc)) from exc
            raise DatabaseError(str(exc)) from exc
        except sqlite3.Error as exc:
            self._abort()
            raise DatabaseError(str(exc)) from exc

    def _abort(self) -> None:
        if self._depth == 0 and self._conn.in_transaction:
            self._conn.rollback()

    def _finish_write(self) -> None:
        if self._depth == 0:
            self._conn.commit()

    def _fetch_one(self, sql: str, params: Sequence[Any], mapper: Callable[[Sequence[Any]], T]) -> T:
        with self._translated():
            row = self._conn.execute(sql, params).fetchone()
        if row is None:
            raise NotFoundError("no rows in result set")
        return mapper(row)

    def _fetch_all(self, sql: str, params: Sequence[Any], mapper: Callable[[Sequence[Any]], T]) -> list[T]:
        with self._translated():
            rows = self._conn.execute(sql, params).fetchall()
        return [mapper(row) for row in rows]

    def _insert_and_fetch(
        self,
        insert: str,
        params: Sequence[Any],
        select: str,
        key: str,
        mapper: Callable[[Sequence[Any]], T],
    ) -> T:
        with self._translated():
            self._conn.execute(insert, params)
            row = self._conn.execute(select, (key,)).fetchone()
            self._finish_write()
        if row is None:
            raise NotFoundError("no rows in result set")
        return mapper(row)

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._translated():
            cursor = self._conn.execute(sql, params)
            self._finish_write()
        return cursor.rowcount

    # feed follows

    def create_feed_follow(
        self, id: UUID, created_at: datetime, updated_at: datetime, user_id: UUID, feed_id: UUID
    ) -> FeedFollowRow:
        """Insert a follow and return it with the feed and user names."""
        return self._insert_and_fetch(
            "INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id) "
            "VALUES (?, ?, ?, ?, ?)",
            (str(id), _encode_time(created_at), _encode_time(updated_at), str(user_id), str(feed_id)),
            _SELECT_FOLLOW_ROW + "WHERE feed_follows.id = ?",
            str(id),
            _follow_row,
        )

    def delete_feed_follow(self, feed_id: UUID, user_id: UUID) -> None:
        """Remove the user's follow of the feed, if any."""
        self._execute(
            "DELETE FROM feed_follows WHERE feed_id = ? AND user_id = ?",
            (str(feed_id), str(user_id)),
        )

    def get_feed_follows_for_user(self, user_id: UUID) -> list[FeedFollowRow]:
        return self._fetch_all(
            _SELECT_FOLLOW_ROW + "WHERE feed_follows.user_id = ?", (str(user_id),), _follow_row
        )

    # feeds

    def create_feed(
        self, id: UUID, created_at: datetime, updated_at: datetime, name: str, url: str, user_id: UUID
    ) -> Feed:
        return self._insert_and_fetch(
            "INSERT INTO feeds (id, created_at, updated_at, name, url, user_id) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (str(id), _encode_time(created_at), _encode_time(updated_at), name, url, str(user_id)),
            f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?",
            str(id),
            _feed,
        )

    def get_feed_by_url(self, url: str) -> Feed:
        return self._fetch_one(f"SELECT {_FEED_COLUMNS} FROM feeds WHERE url = ?", (url,), _feed)

    def get_feeds(self) -> list[Feed]:
        return self._fetch_all(f"SELECT {_FEED_COLUMNS} FROM feeds", (), _feed)

    def get_next_feed_to_fetch(self) -> Feed:
        """Return the feed never fetched, or else the one fetched longest ago."""
        return self._fetch_one(
            f"SELECT {_FEED_COLUMNS} FROM feeds "
            "ORDER BY last_fetched_at IS NOT NULL, last_fetched_at ASC LIMIT 1",
            (),
            _feed,
        )

    def mark_feed_fetched(self, id: UUID) -> Feed:
        """Stamp the feed as fetched now and return it."""
        now = _encode_time(datetime.now(timezone.utc))
        with self._translated():
            cursor = self._conn.execute(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (now, now, str(id)),
            )
            row = self._conn.execute(
                f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (str(id),)
            ).fetchone()
            self._finish_write()
        if cursor.rowcount == 0 or row is None:
            raise NotFoundError("no rows in result set")
        return _feed(row)

    # posts

    def create_post(
        self,
        id: UUID,
        created_at: datetime,
        updated_at: datetime,
        title: str,
        url: str,
        description: str | None,
        published_at: datetime | None,
        feed_id: UUID,
    ) -> Post:
        return self._insert_and_fetch(
            "INSERT INTO posts (id, created_at, updated_at, title, url, description, "
            "published_at, feed_id) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(id),
                _encode_time(created_at),
                _encode_time(updated_at),
                title,
                url,
                description,
                _encode_optional_time(published_at),
                str(feed_id),
            ),
            "SELECT id, created_at, updated_at, title, url, description, published_at, feed_id "
            "FROM posts WHERE id = ?",
            str(id),
            _post,
        )

    def get_posts_for_user(self, user_id: UUID, limit: int) -> list[PostWithFeed]:
        """Return the newest posts from the feeds the user follows."""
        if limit < 0:
            raise DatabaseError("LIMIT must not be negative")
        return self._fetch_all(
            "SELECT posts.id, posts.created_at, posts.updated_at, posts.title, posts.url, "
            "posts.description, posts.published_at, posts.feed_id, feeds.name AS feed_name "
            "FROM posts "
            "JOIN feed_follows ON feed_follows.feed_id = posts.feed_id "
            "JOIN feeds ON posts.feed_id = feeds.id "
            "WHERE feed_follows.user_id = ? "
            "ORDER BY posts.published_at IS NULL DESC, posts.published_at DESC "
            "LIMIT ?",
            (str(user_id), limit),
            _post_with_feed,
        )

    # users

    def create_user(self, id: UUID, created_at: datetime, updated_at: datetime, name: str) -> User:
        return self._insert_and_fetch(
            "INSERT INTO users (id, created_at, updated_at, name) VALUES (?, ?, ?, ?)",
            (str(id), _encode_time(created_at), _encode_time(updated_at), name),
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?",
            str(id),
            _user,
        )

    def delete_users(self) -> None:
        """Delete every user, and with them their feeds, follows and posts."""
        self._execute("DELETE FROM users")

    def get_user(self, name: str) -> User:
        return self._fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE name = ? LIMIT 1", (name,), _user
        )

    def get_user_by_id(self, id: UUID) -> User:
        return self._fetch_one(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (str(id),), _user)

    def get_users(self) -> list[str]:
        return self._fetch_all("SELECT name FROM users", (), lambda row: row[0])


def open_database(url: str) -> Queries:
    """Open the SQLite database named by ``url`` (a path or ``sqlite:///path``)."""
    if not url:
        raise DatabaseError("empty database url")
    prefix = "sqlite:///"
    path = url[len(prefix):] if url.startswith(prefix) else url
    try:
        connection = sqlite3.connect(path)
    except sqlite3.Error as exc:
        raise DatabaseError(str(exc)) from exc
    return Queries(connection)