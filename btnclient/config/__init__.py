"""Configuration management.

This module handles configuration loading and validation.
"""

from __future__ import annotations

from btnclient.config.config import (
    Config,
    ConfigManager,
    get_btn_settings,
    get_config,
    init_config,
    set_config,
)

__all__ = [
    "Config",
    "ConfigManager",
    "get_btn_settings",
    "get_config",
    "init_config",
    "set_config",
]
