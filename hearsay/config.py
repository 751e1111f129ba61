"""Configuration management for hearsay.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a Config object. Property getters provide safe access with
defaults for the bot identity, the web hook HTTP server and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Accessor for the process-wide Config instance.
"""

import os
from pathlib import Path
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv

logger = structlog.get_logger("hearsay.bot")


class Config:
    """Central configuration manager for hearsay.

    Args:
        config_dir: Directory holding settings.yaml and .env. Defaults
            to ``<repo_root>/config/`` or $HEARSAY_CONFIG_DIR.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            env_dir = os.environ.get("HEARSAY_CONFIG_DIR")
            config_dir = Path(env_dir) if env_dir else Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    def validate(self) -> None:
        """Check settings at startup.

        Logs problems but does not raise; the bot starts with defaults
        for anything invalid.
        """
        port = self.settings.get("http", {}).get("port")
        if port is not None and (not isinstance(port, int) or not 0 < port < 65536):
            logger.error("config_invalid_value", key="http.port", value=port, valid="1-65535")

        level = self.logging_level.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.error("config_invalid_value", key="logging.level", value=level)

        if not self.nick:
            logger.warning("no_nick_configured", msg="Bot will answer as 'hearsay'")

    @property
    def nick(self) -> str:
        """Bot nick. Env var HEARSAY_NICK takes precedence."""
        return os.environ.get("HEARSAY_NICK") or self.settings.get("nick", "hearsay")

    @property
    def http_enabled(self) -> bool:
        """Whether to serve web hooks (default True)."""
        return self.settings.get("http", {}).get("enabled", True)

    @property
    def http_host(self) -> str:
        return self.settings.get("http", {}).get("host", "127.0.0.1")

    @property
    def http_port(self) -> int:
        port = self.settings.get("http", {}).get("port", 8080)
        return port if isinstance(port, int) else 8080

    @property
    def base_url(self) -> str:
        """External base URL for web hooks. Env var HEARSAY_BASE_URL takes precedence."""
        configured = os.environ.get("HEARSAY_BASE_URL") or self.settings.get("http", {}).get("base_url")
        if configured:
            return configured
        return f"http://{self.http_host}:{self.http_port}/"

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"dispatch": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the process-wide Config, creating it on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config
