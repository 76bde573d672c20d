"""Configuration module for frame-seekr."""

from .settings import (
    ensure_dirs,
    get_config_dir,
    get_config_file,
    get_data_dir,
    get_database_path,
    get_frames_dir,
    get_index_defaults,
    get_search_config,
    get_search_database_path,
    load_config,
    save_config,
)

__all__ = [
    "ensure_dirs",
    "get_config_dir",
    "get_config_file",
    "get_data_dir",
    "get_database_path",
    "get_frames_dir",
    "get_index_defaults",
    "get_search_config",
    "get_search_database_path",
    "load_config",
    "save_config",
]
