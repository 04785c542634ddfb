"""Configuration management for the BTN client.

Provides centralized configuration with TOML support and validation, loaded
hierarchically from defaults → config file → environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from btnclient.models import BtnSettings, Config
from btnclient.utils.exceptions import ConfigurationError
from btnclient.utils.logging_config import setup_logging

# Global configuration instance
_config_manager: ConfigManager | None = None

CONFIG_FILENAME = "btnclient.toml"

ENV_MAPPINGS: dict[str, str] = {
    "BTN_ENABLED": "btn.enabled",
    "BTN_SUBMIT": "btn.submit",
    "BTN_APP_ID": "btn.app_id",
    "BTN_APP_SECRET": "btn.app_secret",
    "BTN_CONFIG_URL": "btn.config_url",
    "BTN_CACHE_FILE": "btn.cache_file",
    "BTN_CONFIG_REFRESH_INTERVAL": "btn.config_refresh_interval",
    "BTN_RULE_UPDATE_INTERVAL": "btn.rule_update_interval",
    "BTN_SUBMIT_INTERVAL": "btn.submit_interval",
    "BTN_REQUEST_TIMEOUT": "btn.request_timeout",
    "BTN_MAX_RETRIES": "btn.max_retries",
    "BTN_RETRY_BASE_DELAY": "btn.retry_base_delay",
    "BTN_RETRY_MAX_DELAY": "btn.retry_max_delay",
    "BTN_USER_AGENT": "btn.user_agent",
    "BTN_LOG_LEVEL": "observability.log_level",
    "BTN_LOG_FILE": "observability.log_file",
    "BTN_STRUCTURED_LOGGING": "observability.structured_logging",
}

# Values that must never be coerced to numbers or booleans
_STRING_PATHS = {
    "btn.app_id",
    "btn.app_secret",
    "btn.config_url",
    "btn.cache_file",
    "btn.user_agent",
    "observability.log_file",
}


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None, setup_logs: bool = True):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for btnclient.toml
            setup_logs: Configure logging from the loaded observability section

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        if setup_logs:
            self._setup_logging()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / CONFIG_FILENAME,
            Path.home() / ".config" / "btnclient" / CONFIG_FILENAME,
            Path.home() / f".{CONFIG_FILENAME}",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                logging.getLogger(__name__).warning(
                    "Failed to load config file %s: %s", self.config_file, e
                )

        env_config = self._get_env_config()
        config_data = self._merge_config(config_data, env_config)

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        def _parse_env_value(raw: str, path: str) -> bool | int | float | str:
            if path in _STRING_PATHS:
                return raw
            low = raw.lower()
            if low in {"true", "1", "yes", "on"}:
                return True
            if low in {"false", "0", "no", "off"}:
                return False
            try:
                if "." in raw:
                    return float(raw)
                return int(raw)
            except ValueError:
                return raw

        def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
            parts = path.split(".")
            cur = d
            for p in parts[:-1]:
                cur = cur.setdefault(p, {})
            cur[parts[-1]] = value

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            if cfg_path == "observability.log_level":
                _set_nested(env_config, cfg_path, raw.upper())
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def export(self, mask_secrets: bool = True) -> str:
        """Export current configuration as TOML."""
        data = self.config.model_dump(mode="json", exclude_none=True)
        if mask_secrets and data["btn"].get("app_secret"):
            data["btn"]["app_secret"] = "********"
        return toml.dumps(data)

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime.

    Reconfigures logging based on the new config.
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None, setup_logs=False)
    _config_manager.config = new_config
    _config_manager._setup_logging()  # noqa: SLF001


def get_btn_settings() -> BtnSettings:
    """Get BTN section of the configuration."""
    return get_config().btn
