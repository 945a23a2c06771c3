"""
File based event log.

One file per month (``sync-YYYY-MM.log``) under the configured directory,
only the three newest kept. Without detailed logging only ``error`` and
``success`` events are written.
"""
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from product_sync.constants.sync import LogLevel
from product_sync.schemas.sync_schemas import EventLogFile

logger = logging.getLogger(__name__)

LOG_PREFIX = "sync-"
LOG_SUFFIX = ".log"
KEEP_FILES = 3
ALWAYS_LOGGED = (LogLevel.ERROR, LogLevel.SUCCESS)

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_NUMBERS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SUCCESS: logging.INFO,
}


class EventLogger:
    """Append-only monthly event log files."""

    def __init__(
        self,
        log_dir: str,
        detailed_logging: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.log_dir = Path(log_dir)
        self.detailed_logging = detailed_logging
        self.clock = clock
        self.formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        self._handler: Optional[logging.FileHandler] = None

    def _files(self) -> List[Path]:
        if not self.log_dir.is_dir():
            return []
        return sorted(self.log_dir.glob(f"{LOG_PREFIX}*{LOG_SUFFIX}"))

    def _path(self, filename: str) -> Path:
        # basename only, never leave the log directory
        return self.log_dir / os.path.basename(filename)

    def _handler_for(self, now: datetime) -> logging.FileHandler:
        path = self.log_dir / f"{LOG_PREFIX}{now:%Y-%m}{LOG_SUFFIX}"
        if self._handler is not None and self._handler.baseFilename == os.path.abspath(path):
            return self._handler

        self.close()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._handler = logging.FileHandler(path, encoding="utf-8")
        self._handler.setFormatter(self.formatter)
        self._rotate()
        return self._handler

    def log(self, message: str, level: str = LogLevel.INFO) -> None:
        if not self.detailed_logging and level not in ALWAYS_LOGGED:
            return

        now = self.clock()
        record = logging.LogRecord(
            name="product_sync.events",
            level=_LEVEL_NUMBERS.get(level, logging.INFO),
            pathname=__file__,
            lineno=0,
            msg=message,
            args=None,
            exc_info=None,
        )
        record.levelname = level.upper()
        record.created = now.timestamp()
        self._handler_for(now).handle(record)

    def close(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None

    def _rotate(self) -> None:
        files = self._files()
        for old in files[:-KEEP_FILES]:
            old.unlink()
            logger.debug(f"Removed old event log {old.name}")

    def list_files(self) -> List[EventLogFile]:
        """Log files, newest first."""
        result = []
        for path in reversed(self._files()):
            stat = path.stat()
            result.append(EventLogFile(
                name=path.name,
                size=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime),
            ))
        return result

    def read_file(self, filename: str) -> Optional[str]:
        path = self._path(filename)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def clear_file(self, filename: str) -> bool:
        path = self._path(filename)
        if not path.is_file():
            return False
        if self._handler is not None and self._handler.baseFilename == os.path.abspath(path):
            self.close()
        path.unlink()
        return True
