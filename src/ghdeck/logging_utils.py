"""Logging setup for ghdeck.

Modules use the standard pattern:

    import logging
    logger = logging.getLogger(__name__)

The dashboard owns the terminal, so log records go to a rotating file in the
state directory instead of stderr.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from ghdeck.config import get_state_dir

# Max log file size: 5MB, keep 2 backups
_MAX_LOG_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 2

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_log_path() -> Path:
    """Path of the debug log file."""
    return get_state_dir() / "debug.log"


def setup_logging(debug: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``ghdeck`` logger hierarchy.

    Third-party libraries stay at WARNING so httpx request lines do not flood
    the log. Calling this twice does not add a second handler.

    Returns:
        The package root logger.
    """
    root = logging.getLogger("ghdeck")
    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)

    if any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        for handler in root.handlers:
            handler.setLevel(level)
        return root

    log_path = log_file or get_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            log_path, maxBytes=_MAX_LOG_BYTES, backupCount=_BACKUP_COUNT
        )
    except OSError:
        # Read-only home or similar: keep running without a log file
        handler = logging.NullHandler()

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.propagate = False

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root
