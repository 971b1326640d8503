"""
Configuration models and loader.
"""

import yaml
from pathlib import Path
from typing import Literal, Union

from pydantic import BaseModel, Field, ValidationError

from trackdeck.exceptions import ConfigError
from trackdeck.paths import default_download_path


class LibraryConfig(BaseModel):
    """Persisted library configuration (``config.json``)."""

    download_path: str = Field(default_factory=default_download_path)

    @property
    def download_root(self) -> Path:
        return Path(self.download_path).expanduser()


class PlayerSettings(BaseModel):
    """Ambient player settings, read from an optional YAML file."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    audio_format: str = "mp3"
    queue_capacity: int = Field(default=1000, gt=0)
    idle_interval: float = Field(default=0.5, gt=0)  # seconds
    search_results: int = Field(default=50, gt=0)
    max_playlists: int = Field(default=50, gt=0)
    max_playlist_items: int = Field(default=500, gt=0)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PlayerSettings":
        """
        Load and validate settings from a YAML file.

        A missing file yields the defaults.

        Args:
            path: Path to YAML settings file

        Returns:
            PlayerSettings instance

        Raises:
            ConfigError: If the file is unreadable or invalid
        """
        settings_path = Path(path)
        if not settings_path.exists():
            return cls()

        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Error reading settings file {settings_path}: {e}") from e

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(
                f"Invalid settings file {settings_path}: expected a mapping"
            )

        # Accept lowercase log levels from hand-written files
        if isinstance(data.get("log_level"), str):
            data["log_level"] = data["log_level"].upper()

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {e}") from e


def load_settings(path: Union[str, Path]) -> PlayerSettings:
    """
    Load player settings from YAML file.

    Args:
        path: Path to settings file

    Returns:
        PlayerSettings instance
    """
    return PlayerSettings.from_yaml(path)
