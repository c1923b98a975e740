"""JSON log output for processes embedding the engine."""

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

from . import config

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logger(level: Optional[str] = None) -> None:
    """
    Send log records to stderr as JSON lines, via the root logger.

    ``level`` defaults to :data:`idcore.config.LOG_LEVEL`.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    ))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level or config.LOG_LEVEL)
