"""Reading and writing the user's JSON configuration file."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILE_NAME = ".gatorconfig.json"


@dataclass
class Config:
    """Connection settings and the name of the logged-in user."""

    db_url: str = ""
    current_user_name: str = ""
    path: Path | None = field(default=None, compare=False, repr=False)

    def set_user(self, user_name: str) -> None:
        """Make ``user_name`` the current user and save the file."""
        self.current_user_name = user_name
        write_config(self, self.path)


def config_file_path() -> Path:
    """Return the default location of the configuration file."""
    return Path.home() / CONFIG_FILE_NAME


def _string_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"config field {key!r} must be a string")
    return value


def read_config(path: str | Path | None = None) -> Config:
    """Load the configuration from ``path`` or the default location."""
    target = Path(path) if path is not None else config_file_path()
    with target.open(encoding="utf-8") as handle:
        data = json.load(handle)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("config file must hold a JSON object")
    return Config(
        db_url=_string_field(data, "db_url"),
        current_user_name=_string_field(data, "current_user_name"),
        path=target,
    )


def write_config(config: Config, path: str | Path | None = None) -> None:
    """Save ``config`` to ``path`` or the default location."""
    target = Path(path) if path is not None else config_file_path()
    payload = {"db_url": config.db_url, "current_user_name": config.current_user_name}
    with target.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, separators=(",", ":"))
        handle.write("\n")