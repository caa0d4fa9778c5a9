# gator

`gator` is a small command-line RSS aggregator. You register users, add RSS
feeds, follow the feeds you care about, and let the aggregator collect posts
so you can browse them later. Everything is kept in a single SQLite database
file; only the Python standard library is needed.

## Installation

```
pip install .
```

This installs the `gator` command.

## Configuration

`gator` reads its settings from `.gatorconfig.json` in your home directory.
The file must exist before the first run:

```json
{"db_url": "gator.db", "current_user_name": ""}
```

- `db_url` is the SQLite database file, given either as a plain path or as
  `sqlite:///path`. The tables are created on first use.
- `current_user_name` is the logged-in user. `gator` rewrites the file when
  you run `register` or `login`.

If the file cannot be read, or `db_url` is empty, `gator` logs an error and
exits with status 1.

## Usage

```
gator <command> [args...]
```

An unknown command, wrong arguments or a failed query are logged and make
`gator` exit with status 1.

### Users

```
gator register alice      # create a user and log in as them
gator login alice         # switch to an existing user
gator users               # list users, marking the current one with "(current)"
gator reset               # delete all users, with their feeds, follows and posts
```

### Feeds

These commands act as the current user:

```
gator addfeed "Example Blog" https://blog.example.com/rss.xml
gator follow https://blog.example.com/rss.xml
gator following           # names of the feeds you follow
gator unfollow https://blog.example.com/rss.xml
```

`addfeed` also makes the current user follow the new feed. Feed URLs are
unique, and a user can follow a feed only once. To list every feed with the
user who added it:

```
gator feeds
```

### Collecting posts

```
gator agg 1m
```

`agg` runs until interrupted (Ctrl-C exits with status 130). It scrapes one
feed at once and then one on every tick: the feed never fetched, or else the
one fetched longest ago. Each item becomes a post unless a post with the same
link is already stored. Publication dates in the RFC 1123 form with a numeric
zone (`Mon, 02 Jan 2006 15:04:05 -0700`) are kept; other dates are stored as
unknown. Progress is logged to standard error.

The interval is a duration such as `30s`, `1m`, `1h30m`, `1.5h` or `300ms`
(units `ns`, `us`, `ms`, `s`, `m`, `h`); it must be positive.

### Reading

```
gator browse        # the 2 newest posts from feeds you follow
gator browse 10     # the 10 newest
```

Posts are listed newest first; posts without a known publication date come
before the rest.

## Using it as a library

- `gator.config`: `Config`, `read_config(path=None)`, `write_config(config, path=None)`,
  `config_file_path()`.
- `gator.database`: `open_database(url)` returns a `Queries` object with
  methods such as `create_user`, `get_user`, `create_feed`, `get_feeds`,
  `create_feed_follow`, `get_feed_follows_for_user`, `create_post` and
  `get_posts_for_user`. It can be used as a context manager, and
  `Queries.transaction()` groups queries atomically. Failures raise
  `DatabaseError`, `NotFoundError` or `DuplicateError`.
- `gator.rss`: `parse_feed(data)` turns RSS text into an `RSSFeed` with
  `RSSItem`s, decoding HTML entities in titles and descriptions;
  `fetch_feed(url, timeout=10.0)` downloads and parses a feed.
- `gator.handlers`: one function per command, taking a `State`, and
  `parse_duration(text)`.
- `gator.cli`: `main(argv=None)` and `build_commands()`.

## What it does not do

- Storage is SQLite only; there is no support for other database servers.
- There is no web interface or server; posts are read with `gator browse`.
- `agg` fetches feeds one at a time, one per tick, and does not run in the
  background by itself.

## Running the tests

```
pip install ".[test]"
pytest
```