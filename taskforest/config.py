"""
Configuration management for taskforest.

Loads settings from settings.ini with environment variable overrides.
"""

import configparser
import os
from pathlib import Path
from typing import Any, Dict, Optional

from taskforest.logging_config import get_logger

logger = get_logger(__name__)

_DATA_DIR = Path.home() / ".taskforest"
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{_DATA_DIR / 'taskforest.db'}"


class Config:
    """Application configuration manager."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config file, defaults to config/settings.ini
        """
        self.config_path = config_path or self._default_config_path()
        self._config = configparser.ConfigParser()
        self._load()

    def _default_config_path(self) -> Path:
        """Get default config path."""
        project_root = Path(__file__).parent.parent
        return project_root / "config" / "settings.ini"

    def _load(self):
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                self._config.read(self.config_path)
                logger.info(f"Loaded configuration from {self.config_path}")
            except configparser.Error as e:
                logger.warning(f"Failed to read config file: {e}. Using defaults.")
        else:
            logger.debug(f"Config file not found at {self.config_path}. Using defaults.")

    def get_database_config(self) -> Dict[str, Any]:
        """
        Get database configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKFOREST_DATABASE_URL
        - TASKFOREST_DATABASE_ECHO

        Returns:
            Dictionary with database configuration
        """
        echo_env = os.getenv('TASKFOREST_DATABASE_ECHO', '').lower()
        echo = (
            echo_env == 'true'
            if echo_env
            else self._config.getboolean('database', 'echo', fallback=False)
        )

        config = {
            'url': os.getenv('TASKFOREST_DATABASE_URL') or
                   self._config.get('database', 'url', fallback=DEFAULT_DATABASE_URL),
            'echo': echo,
        }

        logger.debug(f"Database config: url={config['url']}, echo={config['echo']}")

        return config

    def get_logging_config(self) -> Dict[str, Any]:
        """
        Get logging configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKFOREST_LOG_LEVEL

        Returns:
            Dictionary with logging configuration
        """
        config = {
            'level': (os.getenv('TASKFOREST_LOG_LEVEL') or
                      self._config.get('logging', 'level', fallback='INFO')).upper(),
        }

        logger.debug(f"Logging config: level={config['level']}")

        return config

    def get(self, section: str, key: str, fallback: Any = None) -> Any:
        """
        Get configuration value with fallback.

        Args:
            section: Config section name
            key: Config key name
            fallback: Default value if not found

        Returns:
            Configuration value or fallback
        """
        return self._config.get(section, key, fallback=fallback)

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get boolean configuration value."""
        return self._config.getboolean(section, key, fallback=fallback)

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get integer configuration value."""
        return self._config.getint(section, key, fallback=fallback)

    def has_section(self, section: str) -> bool:
        """
        Check if config section exists.

        Args:
            section: Section name to check

        Returns:
            True if section exists
        """
        return self._config.has_section(section)

    def sections(self) -> list:
        """Get list of all configuration sections."""
        return self._config.sections()
