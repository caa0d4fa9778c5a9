import uuid
from datetime import datetime, timedelta, timezone

import pytest

from gator.database import (
    DatabaseError,
    DuplicateError,
    NotFoundError,
    open_database,
)

NOW = datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


@pytest.fixture
def db():
    queries = open_database(":memory:")
    yield queries
    queries.close()


def make_user(db, name="alice"):
    return db.create_user(uuid.uuid4(), NOW, NOW, name)


def make_feed(db, user, url="https://example.com/feed.xml", name="Example"):
    return db.create_feed(uuid.uuid4(), NOW, NOW, name, url, user.id)


def make_post(db, feed, url, title, published_at=None, description=None):
    return db.create_post(uuid.uuid4(), NOW, NOW, title, url, description, published_at, feed.id)


def test_create_and_get_user(db):
    uid = uuid.uuid4()
    user = db.create_user(uid, NOW, NOW, "alice")
    assert user.id == uid
    assert user.name == "alice"
    assert user.created_at == NOW
    assert db.get_user("alice") == user
    assert db.get_user_by_id(uid) == user


def test_missing_user_raises_not_found(db):
    with pytest.raises(NotFoundError):
        db.get_user("nobody")
    with pytest.raises(NotFoundError):
        db.get_user_by_id(uuid.uuid4())


def test_duplicate_user_name(db):
    make_user(db, "alice")
    with pytest.raises(DuplicateError):
        make_user(db, "alice")
    assert db.get_users() == ["alice"]


def test_times_round_trip_across_time_zones(db):
    local = datetime(2024, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=5)))
    user = db.create_user(uuid.uuid4(), local, local, "zoned")
    assert db.get_user("zoned").created_at == local
    assert user.updated_at == local


def test_get_users_lists_names(db):
    for name in ("alice", "bob", "carol"):
        make_user(db, name)
    assert sorted(db.get_users()) == ["alice", "bob", "carol"]


def test_delete_users_cascades(db):
    user = make_user(db)
    feed = make_feed(db, user)
    make_post(db, feed, "https://example.com/p1", "P1")
    db.delete_users()
    assert db.get_users() == []
    assert db.get_feeds() == []


def test_create_and_look_up_feed(db):
    user = make_user(db)
    feed = make_feed(db, user, url="https://example.com/a.xml", name="A")
    assert feed.user_id == user.id
    assert feed.last_fetched_at is None
    assert db.get_feed_by_url("https://example.com/a.xml") == feed
    assert db.get_feeds() == [feed]
    with pytest.raises(NotFoundError):
        db.get_feed_by_url("https://example.com/none.xml")


def test_duplicate_feed_url(db):
    user = make_user(db)
    make_feed(db, user)
    with pytest.raises(DuplicateError):
        make_feed(db, user, name="Other")


def test_feed_for_unknown_user_fails(db):
    with pytest.raises(DatabaseError):
        db.create_feed(uuid.uuid4(), NOW, NOW, "X", "https://example.com/x", uuid.uuid4())


def test_next_feed_prefers_never_fetched(db):
    user = make_user(db)
    first = make_feed(db, user, url="https://example.com/1")
    second = make_feed(db, user, url="https://example.com/2")
    marked = db.mark_feed_fetched(first.id)
    assert marked.last_fetched_at is not None
    assert marked.updated_at == marked.last_fetched_at
    assert db.get_next_feed_to_fetch().id == second.id


def test_next_feed_is_oldest_fetched(db):
    user = make_user(db)
    a = make_feed(db, user, url="https://example.com/1")
    b = make_feed(db, user, url="https://example.com/2")
    a_marked = db.mark_feed_fetched(a.id)
    b_marked = db.mark_feed_fetched(b.id)
    nxt = db.get_next_feed_to_fetch()
    assert nxt.last_fetched_at == min(a_marked.last_fetched_at, b_marked.last_fetched_at)


def test_next_feed_with_no_feeds(db):
    with pytest.raises(NotFoundError):
        db.get_next_feed_to_fetch()


def test_mark_unknown_feed(db):
    with pytest.raises(NotFoundError):
        db.mark_feed_fetched(uuid.uuid4())


def test_feed_follow_lifecycle(db):
    user = make_user(db, "alice")
    feed = make_feed(db, user, name="News")
    follow_id = uuid.uuid4()
    row = db.create_feed_follow(follow_id, NOW, NOW, user.id, feed.id)
    assert row.id == follow_id
    assert row.feed_name == "News"
    assert row.user_name == "alice"
    assert db.get_feed_follows_for_user(user.id) == [row]
    db.delete_feed_follow(feed.id, user.id)
    assert db.get_feed_follows_for_user(user.id) == []


def test_duplicate_follow(db):
    user = make_user(db)
    feed = make_feed(db, user)
    db.create_feed_follow(uuid.uuid4(), NOW, NOW, user.id, feed.id)
    with pytest.raises(DuplicateError):
        db.create_feed_follow(uuid.uuid4(), NOW, NOW, user.id, feed.id)


def test_follow_unknown_feed(db):
    user = make_user(db)
    with pytest.raises(DatabaseError):
        db.create_feed_follow(uuid.uuid4(), NOW, NOW, user.id, uuid.uuid4())


def test_create_post_round_trip(db):
    user = make_user(db)
    feed = make_feed(db, user)
    post = make_post(db, feed, "https://example.com/p", "Title", NOW, "Body")
    assert post.title == "Title"
    assert post.description == "Body"
    assert post.published_at == NOW
    assert post.feed_id == feed.id


def test_duplicate_post_url(db):
    user = make_user(db)
    feed = make_feed(db, user)
    make_post(db, feed, "https://example.com/p", "One")
    with pytest.raises(DuplicateError):
        make_post(db, feed, "https://example.com/p", "Two")


def test_posts_for_user_order_and_filter(db):
    alice = make_user(db, "alice")
    bob = make_user(db, "bob")
    followed = make_feed(db, alice, url="https://example.com/f", name="Followed")
    other = make_feed(db, bob, url="https://example.com/o", name="Other")
    db.create_feed_follow(uuid.uuid4(), NOW, NOW, alice.id, followed.id)
    make_post(db, followed, "https://example.com/1", "old", NOW - timedelta(days=2))
    make_post(db, followed, "https://example.com/2", "new", NOW)
    make_post(db, followed, "https://example.com/3", "undated")
    make_post(db, other, "https://example.com/4", "hidden", NOW)
    posts = db.get_posts_for_user(alice.id, 10)
    assert [p.title for p in posts] == ["undated", "new", "old"]
    assert all(p.feed_name == "Followed" for p in posts)
    assert [p.title for p in db.get_posts_for_user(alice.id, 2)] == ["undated", "new"]


def test_negative_limit_rejected(db):
    user = make_user(db)
    with pytest.raises(DatabaseError):
        db.get_posts_for_user(user.id, -1)


def test_transaction_rolls_back(db):
    with pytest.raises(RuntimeError):
        with db.transaction() as tx:
            make_user(tx, "ghost")
            raise RuntimeError("boom")
    assert db.get_users() == []


def test_transaction_commits(db):
    with db.transaction() as tx:
        make_user(tx, "alice")
        make_user(tx, "bob")
    assert sorted(db.get_users()) == ["alice", "bob"]


def test_file_database_persists(tmp_path):
    url = "sqlite:///" + str(tmp_path / "gator.db")
    with open_database(url) as first:
        make_user(first, "alice")
    with open_database(url) as second:
        assert second.get_user("alice").name == "alice"


def test_empty_url_rejected():
    with pytest.raises(DatabaseError):
        open_database("")