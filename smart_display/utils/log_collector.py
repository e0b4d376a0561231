"""
Application log collector: keeps recent log records in memory for the
diagnostics API.
"""
import logging
import threading
import traceback
from collections import deque
from datetime import datetime
from typing import List, Dict, Any, Optional

from ..constants import LOG_COLLECTOR_MAX_SIZE


class LogEntry:
    """A captured log record."""
    def __init__(
        self,
        level: str,
        logger_name: str,
        message: str,
        timestamp: Optional[datetime] = None,
        exc_info: Optional[str] = None
    ):
        self.level = level
        self.logger_name = logger_name
        self.message = message
        self.timestamp = timestamp or datetime.utcnow()
        self.exc_info = exc_info

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "logger_name": self.logger_name,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "exc_info": self.exc_info
        }


class ApplicationLogHandler(logging.Handler):
    """Ring-buffer handler for application logs."""

    def __init__(self, max_size: int = LOG_COLLECTOR_MAX_SIZE):
        super().__init__()
        self.max_size = max_size
        self.logs: deque = deque(maxlen=max_size)
        self.lock = threading.Lock()

    def emit(self, record: logging.LogRecord):
        try:
            exc_info = None
            if record.exc_info:
                exc_info = ''.join(traceback.format_exception(*record.exc_info))

            entry = LogEntry(
                level=record.levelname,
                logger_name=record.name,
                message=record.getMessage(),
                timestamp=datetime.fromtimestamp(record.created),
                exc_info=exc_info
            )
            with self.lock:
                self.logs.append(entry)
        except Exception:
            # logging from inside a handler would recurse
            self.handleError(record)

    def get_logs(
        self,
        limit: int = 100,
        level: Optional[str] = None,
        search: Optional[str] = None,
        logger_name: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Return recent logs, newest last.

        Args:
            limit: Max number of entries
            level: Level filter (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            search: Substring match on message or logger name
            logger_name: Substring match on logger name
        """
        with self.lock:
            filtered = list(self.logs)

        if level:
            filtered = [log for log in filtered if log.level == level.upper()]

        if logger_name:
            logger_lower = logger_name.lower()
            filtered = [log for log in filtered if logger_lower in log.logger_name.lower()]

        if search:
            search_lower = search.lower()
            filtered = [
                log for log in filtered
                if search_lower in log.message.lower() or
                   search_lower in log.logger_name.lower()
            ]

        return [log.to_dict() for log in filtered[-limit:]]

    def get_stats(self) -> Dict[str, Any]:
        with self.lock:
            logs = list(self.logs)

        stats: Dict[str, Any] = {
            "total_logs": len(logs),
            "by_level": {},
            "by_logger": {}
        }
        for log in logs:
            stats["by_level"][log.level] = stats["by_level"].get(log.level, 0) + 1
            stats["by_logger"][log.logger_name] = stats["by_logger"].get(log.logger_name, 0) + 1
        return stats

    def clear(self):
        with self.lock:
            self.logs.clear()


# Global collector instance
application_log_collector = ApplicationLogHandler()


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging once and attach the collector."""
    if not logging.root.handlers:
        logging.basicConfig(
            level=level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    logging.getLogger("smart_display").setLevel(level)
    root_logger = logging.getLogger()
    if application_log_collector not in root_logger.handlers:
        root_logger.addHandler(application_log_collector)
