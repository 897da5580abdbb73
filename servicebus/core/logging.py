"""Process-wide logging setup for consumers and publishers."""

from __future__ import annotations

import logging

from servicebus.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure the root logger from settings.

    Args:
        settings: Settings to read `log_level` from. Defaults to `get_settings()`.

    Notes:
        - Library modules only create loggers; configuring handlers is left to
          entrypoints such as the RabbitMQ consumer.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    logging.getLogger("aio_pika").setLevel(logging.WARNING)
    logging.getLogger("aiormq").setLevel(logging.WARNING)
