import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from tabular_ingest.config import LoggingConfig

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

_configured = False


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Console + rotating file logging for the whole package.

    Safe to call more than once; handlers are only installed the first time.
    """
    global _configured
    config = config or LoggingConfig()
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    if _configured:
        return root

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # watchdog logs every inotify event at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    _configured = True
    return root
