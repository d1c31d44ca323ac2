"""Logging configuration shared by the API process and Celery workers."""

import logging

from rentcore.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once per process."""
    root = logging.getLogger()
    if getattr(root, "_rentcore_configured", False):
        return
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    # SQL echo is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    root._rentcore_configured = True
