"""The command-line entry point."""

from __future__ import annotations

import functools
import logging
import sys
from typing import Any, Callable, Sequence

from gator import handlers
from gator.commands import Command, CommandError, Commands
from gator.config import read_config
from gator.database import DatabaseError, open_database
from gator.handlers import State
from gator.models import User

logger = logging.getLogger("gator")


def logged_in(handler: Callable[[State, Command, User], Any]) -> Callable[[State, Command], Any]:
    """Wrap ``handler`` so that it receives the current user."""

    @functools.wraps(handler)
    def wrapper(state: State, command: Command) -> Any:
        user = state.db.get_user(state.config.current_user_name)
        return handler(state, command, user)

    return wrapper


def build_commands() -> Commands:
    """Return the registry of every command the program knows."""
    commands = Commands()
    commands.register("login", handlers.login)
    commands.register("register", handlers.register)
    commands.register("reset", handlers.reset)
    commands.register("users", handlers.list_users)
    commands.register("agg", handlers.aggregate)
    commands.register("addfeed", logged_in(handlers.add_feed))
    commands.register("feeds", handlers.list_feeds)
    commands.register("follow", logged_in(handlers.follow))
    commands.register("following", logged_in(handlers.list_follows))
    commands.register("unfollow", logged_in(handlers.unfollow))
    commands.register("browse", logged_in(handlers.browse))
    return commands


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(message)s",
        datefmt="%Y/%m/%d %H:%M:%S",
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command named in ``argv`` and return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    _configure_logging()

    try:
        config = read_config()
    except (OSError, ValueError) as exc:
        logger.error("error reading config: %s", exc)
        return 1

    try:
        db = open_database(config.db_url)
    except DatabaseError as exc:
        logger.error("error connecting to database: %s", exc)
        return 1

    with db:
        state = State(config=config, db=db)
        if not args:
            logger.error("Usage: cli <command> [args...]")
            return 1
        try:
            build_commands().run(state, Command(args[0], args[1:]))
        except (CommandError, DatabaseError) as exc:
            logger.error("%s", exc)
            return 1
        except KeyboardInterrupt:
            return 130
    return 0