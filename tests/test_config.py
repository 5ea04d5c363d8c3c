from __future__ import annotations

import logging

import pytest

from mediatrack.core.config import Config, config, get_config, get_log_level


def test_defaults_validate() -> None:
    Config.validate()
    assert config["default"] is config["production"]
    assert config["testing"].MONGODB_DB == "mediatrack_test"


def test_non_positive_cache_duration_is_rejected(monkeypatch) -> None:
    monkeypatch.setattr(Config, "STATS_CACHE_DURATION", 0)
    with pytest.raises(ValueError, match="STATS_CACHE_DURATION"):
        Config.validate()


def test_pool_bounds_are_checked(monkeypatch) -> None:
    monkeypatch.setattr(Config, "MONGODB_MIN_POOL_SIZE", 20)
    monkeypatch.setattr(Config, "MONGODB_MAX_POOL_SIZE", 10)
    with pytest.raises(ValueError, match="POOL_SIZE"):
        Config.validate()


def test_unknown_log_level_is_rejected(monkeypatch) -> None:
    monkeypatch.setattr(Config, "LOG_LEVEL", "CHATTY")
    with pytest.raises(ValueError, match="LOG_LEVEL"):
        Config.validate()


def test_get_log_level() -> None:
    assert get_log_level("debug") == logging.DEBUG
    assert get_log_level("WARNING") == logging.WARNING
    assert get_log_level("chatty") == logging.INFO


def test_get_config_by_name() -> None:
    assert get_config("testing") is config["testing"]
    assert get_config("Development") is config["development"]
    assert get_config("testing").MONGODB_DB == "mediatrack_test"


def test_get_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("MEDIATRACK_ENV", "testing")
    assert get_config() is config["testing"]
    monkeypatch.delenv("MEDIATRACK_ENV")
    assert get_config() is config["default"]


def test_unknown_environment_falls_back_to_default(monkeypatch, caplog) -> None:
    monkeypatch.setenv("MEDIATRACK_ENV", "staging")
    assert get_config() is config["default"]
    assert "staging" in caplog.text


def test_connector_uses_selected_settings(monkeypatch) -> None:
    import importlib

    from mediatrack.core import db_connector

    monkeypatch.setenv("MEDIATRACK_ENV", "testing")
    try:
        importlib.reload(db_connector)
        assert db_connector.settings is config["testing"]
        assert db_connector.db.name == "mediatrack_test"
    finally:
        monkeypatch.delenv("MEDIATRACK_ENV")
        importlib.reload(db_connector)
