"""
Logging setup for the app process (web workers and the lifecycle sweep).
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(message)s"
)


def configure_logging(app, max_bytes: int = 10 * 1024 * 1024, backup_count: int = 5) -> logging.Logger:
    """
    Attach console (and optional rotating file) handlers to the root logger.

    Level comes from LOG_LEVEL, the file from LOG_FILE. Calling it again is a
    no-op so repeated app factories in tests don't stack handlers.
    """
    root = logging.getLogger()
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    root.setLevel(level)

    if getattr(root, "_turfslot_configured", False):
        return root

    formatter = logging.Formatter(DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    log_file = app.config.get("LOG_FILE")
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # APScheduler is chatty at INFO on every run
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))

    root._turfslot_configured = True
    return root
