import sys
from collections import deque
from threading import Lock

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
RECENT_LOGS_SIZE = 1000

_recent_logs: deque = deque(maxlen=RECENT_LOGS_SIZE)
_recent_lock = Lock()


def _remember(message) -> None:
    record = message.record
    entry = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        **{key: value for key, value in record["extra"].items()},
    }
    with _recent_lock:
        _recent_logs.append(entry)


def configure_logger(level: str = "INFO") -> None:
    """Configure Loguru console logger with colored output and the recent-logs buffer."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        colorize=True,
        format=LOG_FORMAT,
        backtrace=True,
        diagnose=True,
    )
    logger.add(_remember, level=level.upper())


def get_recent_logs(limit: int = 200) -> list[dict[str, object]]:
    """Return up to ``limit`` most recent records, oldest first."""
    with _recent_lock:
        entries = list(_recent_logs)
    return entries[-limit:] if limit > 0 else []


def clear_recent_logs() -> None:
    with _recent_lock:
        _recent_logs.clear()


def log_info(message: str, **kwargs) -> None:
    logger.bind(**kwargs).info(message)


def log_warning(message: str, **kwargs) -> None:
    logger.bind(**kwargs).warning(message)


def log_error(message: str, **kwargs) -> None:
    logger.bind(**kwargs).error(message)
