"""
Centralized configuration management.

Values are layered, later sources overriding earlier ones:
1) `env.example` (committed, safe placeholders)
2) `env.local` (optional, MUST NOT be committed)
3) System environment variables (highest priority)
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger


class EnvironConfig:
    """
    Singleton configuration class that loads environment variables from env files
    and system environment, providing dictionary-like access with default values.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config = {}
            self._load_config()
            EnvironConfig._initialized = True

    def _load_config(self):
        root = Path(__file__).parent.parent.parent

        example_path = root / "env.example"
        if example_path.exists():
            self._config.update(dotenv_values(example_path))
            logger.info("Loaded environment variables from {}", example_path)

        local_path = root / "env.local"
        if local_path.exists():
            self._config.update(dotenv_values(local_path))
            logger.info("Loaded and overrode environment variables from {}", local_path)

        self._config.update(os.environ)

    def __getitem__(self, key):
        """
        Get configuration value by key.

        Raises:
            KeyError: If key not found
        """
        if key not in self._config:
            raise KeyError(f"Configuration key '{key}' not found")

        return self._config[key]

    def get(self, key, default=None):
        """Get configuration value by key with optional default."""
        value = self._config.get(key, default)
        return default if value is None else value

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get(key)
        if raw is None or not str(raw).strip():
            return default
        return str(raw).strip().lower() in {"true", "1", "yes", "on"}

    def get_int(self, key: str, default: int) -> int:
        raw = self.get(key)
        try:
            return int(str(raw).strip()) if raw not in (None, "") else default
        except (TypeError, ValueError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default

    def get_float(self, key: str, default: float) -> float:
        raw = self.get(key)
        try:
            return float(str(raw).strip()) if raw not in (None, "") else default
        except (TypeError, ValueError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default

    def clear(self):
        """Clear configuration. Useful for testing."""
        self._config.clear()
        logger.info("Configuration cleared")

    def reload(self):
        """Reload configuration from files and environment."""
        self._config.clear()
        self._load_config()
        logger.info("Configuration reloaded")

    def __contains__(self, key):
        return key in self._config

    def __iter__(self):
        return iter(self._config)

    def keys(self):
        return self._config.keys()

    def values(self):
        return self._config.values()

    def items(self):
        return self._config.items()

    def get_mongo_url(self, label: str = "default") -> str:
        """
        Get MongoDB connection URL for a specific label.

        `MONGO_URL_<LABEL>` wins, then `MONGO_URL`, then localhost.
        """
        if label != "default":
            url = self.get(f"MONGO_URL_{label.upper()}")
            if url:
                return url

        for key in ("MONGO_URL_DEFAULT", "MONGO_URL"):
            url = self.get(key)
            if url:
                return url

        return "mongodb://localhost:27017"

    def get_mongo_max_pool_size(self) -> int:
        """
        Get MongoDB maximum pool size (1-100, default: 5).
        """
        size = self.get_int("MONGO_MAX_POOL_SIZE", 5)
        if 1 <= size <= 100:
            return size
        logger.warning("MONGO_MAX_POOL_SIZE value {} is out of range (1-100), defaulting to 5", size)
        return 5

    def get_mongo_server_selection_timeout(self) -> int:
        timeout = self.get_int("MONGO_SERVER_SELECTION_TIMEOUT", 30000)
        if timeout > 0:
            return timeout
        logger.warning(
            "MONGO_SERVER_SELECTION_TIMEOUT value {} must be positive, defaulting to 30000", timeout
        )
        return 30000

    def get_mongo_connect_timeout(self) -> int:
        timeout = self.get_int("MONGO_CONNECT_TIMEOUT", 30000)
        if timeout > 0:
            return timeout
        logger.warning("MONGO_CONNECT_TIMEOUT value {} must be positive, defaulting to 30000", timeout)
        return 30000


# Global configuration instance
config = EnvironConfig()
