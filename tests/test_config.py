"""Tests for config/settings.py."""

import logging

import yaml

from factotum.config.logging_setup import configure_logging
from factotum.config.settings import LoggingConfig, load_settings

_ENV_KEYS = (
    "FACTOTUM_DEFAULT_TIMEOUT", "FACTOTUM_POLL_INTERVAL", "FACTOTUM_MAX_PARALLELISM",
    "FACTOTUM_STORAGE_BACKEND", "FACTOTUM_DATA_DIR", "FACTOTUM_LOG_LEVEL",
)


def _clear_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_when_no_file_or_env(monkeypatch, tmp_path):
    """Default settings when no config file or env vars exist."""
    _clear_env(monkeypatch)
    settings = load_settings(config_path=str(tmp_path / "nonexistent.yaml"))
    assert settings.engine.default_timeout == 60
    assert settings.engine.poll_interval == 0.05
    assert settings.engine.max_parallelism is None
    assert settings.storage.backend == "json"
    assert settings.storage.data_dir == "data"
    assert settings.logging.level == "INFO"


def test_yaml_file_overrides_defaults(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.dump({
        "engine": {"default_timeout": 30, "max_parallelism": 4},
        "storage": {"backend": "memory"},
    }))

    settings = load_settings(config_path=str(config_file))
    assert settings.engine.default_timeout == 30
    assert settings.engine.max_parallelism == 4
    assert settings.storage.backend == "memory"
    # Unset fields keep defaults
    assert settings.engine.poll_interval == 0.05
    assert settings.storage.data_dir == "data"


def test_env_vars_override_yaml(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.dump({"engine": {"default_timeout": 30}, "logging": {"level": "DEBUG"}}))

    monkeypatch.setenv("FACTOTUM_DEFAULT_TIMEOUT", "90")
    monkeypatch.setenv("FACTOTUM_DATA_DIR", "/var/lib/factotum")

    settings = load_settings(config_path=str(config_file))
    assert settings.engine.default_timeout == 90
    assert settings.storage.data_dir == "/var/lib/factotum"
    # YAML still applies where env not set
    assert settings.logging.level == "DEBUG"


def test_env_var_config_file_path(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    config_file = tmp_path / "custom.yaml"
    config_file.write_text(yaml.dump({"engine": {"poll_interval": 0.2}}))
    monkeypatch.setenv("FACTOTUM_CONFIG_FILE", str(config_file))

    settings = load_settings()
    assert settings.engine.poll_interval == 0.2


def test_configure_logging_sets_level():
    configure_logging(LoggingConfig(level="warning"))
    assert logging.getLogger().level == logging.WARNING
    configure_logging(LoggingConfig(level="nonsense"))
    assert logging.getLogger().level == logging.INFO
