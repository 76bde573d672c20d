"""Basic settings and directory management."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir


def get_config_dir() -> Path:
    """Get the configuration directory."""
    return Path(os.environ.get("FRAME_SEEKR_CONFIG_DIR", user_config_dir("frame-seekr")))


def get_data_dir() -> Path:
    """Get the data directory for the metadata and search databases."""
    return Path(os.environ.get("FRAME_SEEKR_DATA_DIR", user_data_dir("frame-seekr")))


def get_frames_dir() -> Path:
    """Get the root directory under which frames are extracted, one folder per video."""
    default = get_data_dir() / "frames"
    return Path(os.environ.get("FRAME_SEEKR_FRAMES_DIR", str(default)))


def get_database_path() -> Path:
    """Get the metadata store database path."""
    return get_data_dir() / "frame-seekr.db"


def get_search_database_path() -> Path:
    """Get the embedded search index database path."""
    return get_data_dir() / "search.db"


def get_config_file() -> Path:
    """Get the config file path."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from file."""
    config: dict[str, Any] = {}
    config_file = get_config_file()
    if config_file.exists():
        with open(config_file) as f:
            config = json.load(f)
    return config


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(config, f, indent=2)


def ensure_dirs() -> None:
    """Ensure all required directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
    get_frames_dir().mkdir(parents=True, exist_ok=True)


# Indexing defaults
DEFAULT_INDEX_CONFIG = {
    "interval": 0.1,  # seconds between frames
    "quality": 5,  # 1-31, lower is better
    "format": "jpg",
    "height": None,  # keep source resolution
    "stream": 0,
}


def get_index_defaults() -> dict[str, Any]:
    """Get indexing defaults merged with the "index" config section."""
    config = load_config()
    index = config.get("index", {})
    return {**DEFAULT_INDEX_CONFIG, **index}


def get_search_config() -> dict[str, Any]:
    """Get search backend configuration with defaults."""
    defaults = {
        "backend": "sqlite",  # "sqlite" or "meilisearch"
        "host": os.environ.get("MEILI_HOST", "http://localhost:7700"),
        "api_key": os.environ.get("MEILI_KEY", "masterKey"),
        "index": "frames",
    }
    config = load_config()
    search = config.get("search", {})
    return {**defaults, **search}
