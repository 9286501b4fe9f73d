"""Load and save memochat configuration files."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from memochat.config.schema import Config
from memochat.errors import ConfigError
from memochat.utils.helpers import atomic_write_text


def get_config_path() -> Path:
    return Path.home() / ".memochat" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from *config_path* (or the default location).

    A missing file yields defaults.

    Raises:
        ConfigError: the file is not valid JSON or fails validation.
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e


def save_config(config: Config, config_path: Path | None = None) -> Path:
    path = config_path or get_config_path()
    data = config.model_dump(by_alias=True)
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
    return path
