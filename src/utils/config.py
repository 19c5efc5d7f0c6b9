"""
Configuration management for the storefront catalog core.

This module handles:
- Database URL configuration (SQLite file by default, PostgreSQL via env)
- Environment-specific configuration (development vs. production)
- Transaction retry bound and SKU defaults
"""

import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    SKU_DEFAULT_PREFIX,
)

ENV_ENVIRONMENT = "STOREFRONT_ENV"
ENV_DATABASE_URL = "STOREFRONT_DATABASE_URL"
ENV_SKU_PREFIX = "STOREFRONT_SKU_PREFIX"
ENV_TX_RETRIES = "STOREFRONT_TX_RETRIES"
ENV_SQL_ECHO = "STOREFRONT_SQL_ECHO"


class Config:
    """
    Application configuration manager.

    Values come from environment variables when set, otherwise from
    defaults suited to the selected environment.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_path = self._base_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get(ENV_DATABASE_URL)

        self._sku_prefix = os.environ.get(ENV_SKU_PREFIX, SKU_DEFAULT_PREFIX)
        self._max_transaction_retries = int(os.environ.get(ENV_TX_RETRIES, "3"))
        self._sql_echo = os.environ.get(ENV_SQL_ECHO, "0") == "1"

    def _get_project_data_dir(self) -> Path:
        """Project data/ directory used in development."""
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Per-user data directory used in production."""
        return Path.home() / ".storefront_catalog"

    def ensure_directories(self) -> None:
        """Create the SQLite data directory if a file database is used."""
        if self.is_sqlite_file:
            self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the default SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        STOREFRONT_DATABASE_URL wins when set (e.g. a postgresql:// URL);
        otherwise a SQLite file under the data directory is used.
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def is_sqlite_file(self) -> bool:
        """True when the configured database is a SQLite file."""
        url = self.database_url
        return url.startswith("sqlite") and ":memory:" not in url

    @property
    def sku_prefix(self) -> str:
        """Default brand prefix for new SKUs."""
        return self._sku_prefix

    @property
    def max_transaction_retries(self) -> int:
        """How many times an infrastructure failure is retried per transaction."""
        return self._max_transaction_retries

    @property
    def sql_echo(self) -> bool:
        """Log every SQL statement."""
        return self._sql_echo

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    STOREFRONT_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_ENVIRONMENT, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        import logging

        logger = logging.getLogger(__name__)
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def set_config(config: Config) -> None:
    """Install a specific configuration instance (tests, embedding apps)."""
    global _config_instance
    _config_instance = config


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """Get the database URL."""
    return get_config().database_url
