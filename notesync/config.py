"""Configuration loading for note sync.

Settings come from, in increasing precedence:
1. Defaults
2. ~/.notesync/config.json (or an explicit path)
3. NOTESYNC_REMOTE_URL / NOTESYNC_BUCKET environment variables

String values in the JSON file may reference environment variables as
${VAR} or ${VAR:-default}.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

__all__ = [
    "SyncSettings",
    "load_settings",
    "expand_env_vars",
    "configure_logging",
]

DEFAULT_CONFIG_PATH = Path.home() / ".notesync" / "config.json"

# Pattern to match ${VAR} or ${VAR:-default} syntax
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

ENV_OVERRIDES = {
    "NOTESYNC_REMOTE_URL": "remote_url",
    "NOTESYNC_BUCKET": "bucket",
}


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} and ${VAR:-default} references in a string."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        return default if default is not None else ""

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_env_vars_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return expand_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: expand_env_vars_recursive(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars_recursive(item) for item in obj]
    return obj


@dataclass
class SyncSettings:
    """Where and how notes are synced."""

    remote_url: str = "https://kinto.dev.mozaws.net/v1"
    bucket: str = "default"
    collection: str = "notes"
    record_id: str = "singleNote"
    recipient_id: str = "notes@mozilla.com"
    storage_dir: Path = field(default_factory=lambda: Path.home() / ".notesync")
    timeout: float = 30.0
    verify_ssl: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncSettings":
        """Create settings from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "storage_dir" in values:
            values["storage_dir"] = Path(values["storage_dir"]).expanduser()
        if "timeout" in values:
            values["timeout"] = float(values["timeout"])
        return cls(**values)

    @classmethod
    def from_file(cls, path: Path) -> "SyncSettings":
        """Load settings from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            json.JSONDecodeError: If the file contains invalid JSON.
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(expand_env_vars_recursive(data))


def load_settings(path: Path | None = None) -> SyncSettings:
    """Load settings from the config file (if present) and the environment."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        settings = SyncSettings.from_file(config_path)
    else:
        settings = SyncSettings()

    for env_var, attr in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            setattr(settings, attr, value)

    return settings


def configure_logging(level: int | str = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
