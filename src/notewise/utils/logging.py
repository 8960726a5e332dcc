"""Root logging for the ``notewise`` console script."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["LOG_DIR_ENV", "setup_logging"]

LOG_DIR_ENV = "NOTEWISE_LOG_DIR"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_NOISY_LOGGERS = ("asyncio", "httpx", "httpcore")
_log_path: Path | None = None


def setup_logging(level: int = logging.INFO, *, force: bool = False) -> Path:
    """Log to ``notewise.log`` (rotated) and stderr; repeated calls are no-ops unless ``force``.

    The directory defaults to ``~/.notewise/logs`` and follows ``NOTEWISE_LOG_DIR``.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    log_dir = Path(os.environ.get(LOG_DIR_ENV) or Path.home() / ".notewise" / "logs").expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / "notewise.log"

    formatter = logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers, force=True)

    # httpx logs every request at INFO
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _log_path = path
    return path
