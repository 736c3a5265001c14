"""Configuration loading: YAML file -> env vars -> Pydantic defaults."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel


class EngineConfig(BaseModel):
    default_timeout: int = 60  # seconds, for steps without run_seconds
    poll_interval: float = 0.05
    max_parallelism: int | None = None


class StorageConfig(BaseModel):
    backend: str = "json"  # "json" or "memory"
    data_dir: str = "data"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseModel):
    engine: EngineConfig = EngineConfig()
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()


_ENV_MAP: dict[str, tuple[str, str, type]] = {
    "FACTOTUM_DEFAULT_TIMEOUT": ("engine", "default_timeout", int),
    "FACTOTUM_POLL_INTERVAL": ("engine", "poll_interval", float),
    "FACTOTUM_MAX_PARALLELISM": ("engine", "max_parallelism", int),
    "FACTOTUM_STORAGE_BACKEND": ("storage", "backend", str),
    "FACTOTUM_DATA_DIR": ("storage", "data_dir", str),
    "FACTOTUM_LOG_LEVEL": ("logging", "level", str),
}


def load_settings(config_path: str | None = None) -> Settings:
    """Load settings: YAML file -> env var overrides -> Pydantic defaults."""
    yaml_data: dict = {}

    # 1. Resolve config file path
    path = _resolve_config_path(config_path)
    if path and path.is_file():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}

    # 2. Build settings from YAML (or defaults)
    settings = Settings.model_validate(yaml_data) if yaml_data else Settings()

    # 3. Override with env vars, section by section
    overrides: dict[str, dict] = {}
    for env_key, (section, field_name, field_type) in _ENV_MAP.items():
        val = os.environ.get(env_key)
        if val is not None:
            overrides.setdefault(section, {})[field_name] = field_type(val)

    if overrides:
        merged = settings.model_dump()
        for section, values in overrides.items():
            merged[section].update(values)
        settings = Settings.model_validate(merged)

    return settings


def _resolve_config_path(explicit_path: str | None) -> Path | None:
    if explicit_path:
        return Path(explicit_path)

    env_path = os.environ.get("FACTOTUM_CONFIG_FILE")
    if env_path:
        return Path(env_path)

    # Default: config.yaml next to this module
    pkg_dir = Path(__file__).parent
    default = pkg_dir / "config.yaml"
    if default.is_file():
        return default

    return None
