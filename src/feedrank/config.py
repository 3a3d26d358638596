"""
Configuration management for feedrank.

Provides centralized configuration using Pydantic for validation and
environment variable support. Subscription lists live in a separate
feeds.yaml file next to the freshness metadata and the body cache.
"""

from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from feedrank.errors import UsageError


# Default data paths, relative to the user's home directory
DATA_DIR = Path.home() / ".feedrank"
FEEDS_FILE_NAME = "feeds.yaml"
FRESHNESS_FILE_NAME = "cache_info.json"
CACHE_DIR_NAME = "feeds"

DEFAULT_USER_AGENT = "feedrank/0.1 (+https://pypi.org/project/feedrank/)"


def load_feeds_yaml(path: Path) -> dict:
    """
    Load the subscription lists file.

    Args:
        path: Path to feeds.yaml

    Returns:
        Dictionary with feeds.yaml contents, or empty dict if not found
    """
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


class Config(BaseSettings):
    """
    Application configuration with environment variable support.

    Configuration can be provided via:
    1. Environment variables (prefixed with FEEDRANK_)
    2. .env file
    3. Default values

    Example:
        export FEEDRANK_DATA_DIR="/srv/feedrank"
        export FEEDRANK_COLOR_MAP='{"0": 196, "1": 46}'
    """

    model_config = SettingsConfigDict(
        env_prefix="FEEDRANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Storage paths
    data_dir: Path = Field(
        default=DATA_DIR,
        description="Base directory for subscriptions, cache metadata and bodies"
    )
    feeds_file: Optional[Path] = Field(
        default=None,
        description="Subscription lists file (defaults to <data_dir>/feeds.yaml)"
    )
    freshness_file: Optional[Path] = Field(
        default=None,
        description="Per-feed freshness metadata (defaults to <data_dir>/cache_info.json)"
    )
    cache_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding cached feed bodies (defaults to <data_dir>/feeds)"
    )

    # Network settings
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent with every feed request"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound in seconds for a single feed request"
    )
    max_workers: int = Field(
        default=16,
        ge=1,
        description="Maximum number of feeds polled concurrently"
    )

    # Display settings
    color_map: Dict[int, int] = Field(
        default_factory=dict,
        description="Remap of round-robin color indices (0-255) to user colors"
    )
    summary: bool = Field(
        default=False,
        description="Print a run summary line after each pass"
    )

    @field_validator("color_map")
    @classmethod
    def _check_color_range(cls, value: Dict[int, int]) -> Dict[int, int]:
        for key, color in value.items():
            if not 0 <= key <= 255 or not 0 <= color <= 255:
                raise ValueError(f"color mapping {key}:{color} is outside 0-255")
        return value

    @property
    def feeds_path(self) -> Path:
        return self.feeds_file or self.data_dir / FEEDS_FILE_NAME

    @property
    def freshness_path(self) -> Path:
        return self.freshness_file or self.data_dir / FRESHNESS_FILE_NAME

    @property
    def cache_path(self) -> Path:
        return self.cache_dir or self.data_dir / CACHE_DIR_NAME

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.cache_path.mkdir(parents=True, exist_ok=True)
        self.freshness_path.parent.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """
    Get the application configuration instance.

    Merges settings from environment variables and the .env file,
    and makes sure the data directories exist.

    Returns:
        Config: Application configuration

    Raises:
        UsageError: If a setting has an invalid value
    """
    try:
        config = Config()
    except (ValidationError, SettingsError) as exc:
        raise UsageError(f"invalid configuration: {exc}") from exc
    config.ensure_directories()
    return config
