"""Registry of named commands and the errors they raise."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

Handler = Callable[[Any, "Command"], Any]


class CommandError(Exception):
    """A command could not be found or could not do its work."""


@dataclass
class Command:
    """A command name and the arguments given to it."""

    name: str
    args: list[str] = field(default_factory=list)


class Commands:
    """Maps command names to the handlers that carry them out."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def register(self, name: str, handler: Handler) -> None:
        """Bind ``handler`` to ``name``, replacing any earlier binding."""
        self._handlers[name] = handler

    def run(self, state: Any, command: Command) -> Any:
        """Run the handler registered for ``command.name``."""
        handler = self._handlers.get(command.name)
        if handler is None:
            raise CommandError("command not found")
        return handler(state, command)