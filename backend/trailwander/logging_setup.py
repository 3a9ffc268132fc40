# backend/trailwander/logging_setup.py
from __future__ import annotations

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Union

DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "var" / "logs"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(process)d] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# third-party loggers that drown out request logs at DEBUG
LIBRARY_LEVELS: Dict[str, int] = {
    "urllib3": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "werkzeug": logging.INFO,
}

Level = Union[str, int, None]


class TimestampedLogFileHandler(RotatingFileHandler):
    """
    Size-capped log file that rolls over into a fresh ``<prefix>-<timestamp>.log``
    rather than renaming old files to ``.1``, ``.2``, ...
    """

    def __init__(self, directory: Union[str, Path], prefix: str = "trailwander", max_bytes: int = 1_000_000):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        super().__init__(self._next_path(), maxBytes=max_bytes, backupCount=0, encoding="utf-8", errors="replace")

    def _next_path(self) -> str:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")[:-3]
        return os.fspath(self.directory / f"{self.prefix}-{stamp}.log")

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None
        self.baseFilename = self._next_path()
        self.mode = "a"
        self.stream = self._open()


def resolve_level(level: Level = None) -> int:
    """``level`` if given, else LOG_LEVEL from the environment, else INFO."""
    if isinstance(level, int):
        return level
    name = level if isinstance(level, str) else os.getenv("LOG_LEVEL", "INFO")
    resolved = logging.getLevelName(name.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def start_log(
    *,
    app_name: str = "trailwander",
    log_dir: Optional[Union[str, Path]] = None,
    level: Level = None,
    to_console: bool = True,
    to_file: bool = True,
    max_bytes: int = 1_000_000,
) -> logging.Logger:
    """
    Route every ``logging.getLogger(__name__)`` in the backend to one place.

    Files land in ``log_dir``, else LOG_DIR, else ``<repo>/var/logs``.
    Calling this again swaps the handlers out instead of adding a second set.
    """
    root = logging.getLogger()
    root.setLevel(resolve_level(level))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    target_dir: Optional[Path] = None

    if to_file:
        target_dir = Path(log_dir or os.getenv("LOG_DIR") or DEFAULT_LOG_DIR)
        file_handler = TimestampedLogFileHandler(target_dir, prefix=app_name, max_bytes=max_bytes)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if to_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    for name, library_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(max(library_level, root.level))

    root.info(
        "Logging started app=%s dir=%s level=%s",
        app_name,
        target_dir or "-",
        logging.getLevelName(root.level),
    )
    return root
