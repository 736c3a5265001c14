import logging

from factotum.config.settings import LoggingConfig


def configure_logging(config: LoggingConfig | None = None) -> None:
    config = config or LoggingConfig()
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=config.format, force=True)
