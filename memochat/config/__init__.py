"""Configuration module for memochat."""

from memochat.config.loader import get_config_path, load_config, save_config
from memochat.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
