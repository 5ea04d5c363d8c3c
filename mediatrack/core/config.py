# config.py
import os
import logging

from dotenv import load_dotenv

load_dotenv(override=False)


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


class Config:
    """Base configuration class"""
    MONGODB_URI = os.getenv("MONGODB_URI") or "mongodb://localhost:27017"
    MONGODB_DB = os.getenv("MONGODB_DB") or "mediatrack"
    WATCHLIST_COLLECTION = os.getenv("WATCHLIST_COLLECTION") or "watchlist"

    MONGODB_MAX_POOL_SIZE = _env_int("MONGODB_MAX_POOL_SIZE", 50)
    MONGODB_MIN_POOL_SIZE = _env_int("MONGODB_MIN_POOL_SIZE", 5)
    MONGODB_TIMEOUT_MS = _env_int("MONGODB_TIMEOUT_MS", 10000)

    # Per-user aggregates (stats) are cached in-process for this many seconds
    STATS_CACHE_DURATION = _env_int("STATS_CACHE_DURATION", 900)

    LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

    @classmethod
    def validate(cls):
        """Raise ValueError if the loaded settings are unusable."""
        if cls.STATS_CACHE_DURATION <= 0:
            raise ValueError("STATS_CACHE_DURATION must be positive")
        if cls.MONGODB_MIN_POOL_SIZE > cls.MONGODB_MAX_POOL_SIZE:
            raise ValueError("MONGODB_MIN_POOL_SIZE cannot exceed MONGODB_MAX_POOL_SIZE")
        if not isinstance(logging.getLevelName(cls.LOG_LEVEL), int):
            raise ValueError(f"Unknown LOG_LEVEL: {cls.LOG_LEVEL}")


class DevelopmentConfig(Config):
    LOG_LEVEL = (os.getenv("LOG_LEVEL") or "DEBUG").upper()


class ProductionConfig(Config):
    pass


class TestingConfig(Config):
    MONGODB_DB = "mediatrack_test"
    STATS_CACHE_DURATION = 60


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": ProductionConfig,
}


def get_log_level(name=None):
    """Map a level name to a logging constant, falling back to INFO."""
    level_name = (name or get_config().LOG_LEVEL or "INFO").upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def get_config(env=None):
    """Settings class for MEDIATRACK_ENV (development, production, testing)."""
    name = (env or os.getenv("MEDIATRACK_ENV") or "default").lower()
    if name not in config:
        logging.getLogger(__name__).warning(f"Unknown MEDIATRACK_ENV {name!r}, using default settings")
        name = "default"
    return config[name]
