"""
Process-wide logging for the titration engine.

Every module logger feeds one queue; a single QueueListener drains it into a
rotating file under the log directory and a UTF-8 console handler. Records
may carry `extra={'user_id': ...}`; records without one show "N/A".

Environment:
- SLEEP_TITRATION_LOG_DIR: log directory (default ./logs)
- SLEEP_TITRATION_CONSOLE_LEVEL: initial console threshold (default WARNING, "OFF" silences it)
"""
import atexit
import logging
import os
import queue
import sys
import threading
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler

from colorama import Fore, Style

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(user_id)s - %(message)s'
LOG_FILE_MAX_BYTES = 1048576
LOG_FILE_BACKUPS = 3

_log_queue = queue.Queue()
_listener = None
_lock = threading.Lock()
_console_handler = None
_pending_console_level = None


class SafeFormatter(logging.Formatter):
    def format(self, record):
        if not hasattr(record, 'user_id'):
            record.user_id = "N/A"
        return super().format(record)


class Utf8ConsoleHandler(logging.StreamHandler):
    """Writes encoded bytes when the stream exposes a buffer, so non-ASCII never raises on narrow consoles."""

    def emit(self, record):
        try:
            line = self.format(record) + self.terminator
            buffer = getattr(self.stream, 'buffer', None)
            if buffer is not None:
                buffer.write(line.encode('utf-8', errors='replace'))
                buffer.flush()
            else:
                self.stream.write(line)
                self.flush()
        except Exception:
            self.handleError(record)


def ensure_logs_directory():
    logs_dir = os.environ.get('SLEEP_TITRATION_LOG_DIR') or os.path.join(os.getcwd(), 'logs')
    os.makedirs(logs_dir, exist_ok=True)
    return logs_dir


def _log_file_path(log_file):
    if os.path.isabs(log_file):
        return log_file
    # One file per process: concurrent batch runs must not rotate each other's files
    base_name, ext = os.path.splitext(log_file)
    return os.path.join(ensure_logs_directory(), f"{base_name}_{os.getpid()}{ext}")


def _initial_console_level():
    if _pending_console_level is not None:
        return _pending_console_level
    configured = os.environ.get('SLEEP_TITRATION_CONSOLE_LEVEL')
    return _normalize_level(configured) if configured else logging.WARNING


def _start_listener(log_file):
    global _listener, _console_handler

    formatter = SafeFormatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        _log_file_path(log_file), maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS,
        encoding='utf-8', delay=True,
    )
    file_handler.setFormatter(formatter)

    console_handler = Utf8ConsoleHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(_initial_console_level())

    _console_handler = console_handler
    _listener = QueueListener(_log_queue, file_handler, console_handler, respect_handler_level=True)
    _listener.start()
    atexit.register(stop_logging)


def get_logger(name: str, level=None, log_file="sleep_titration.log"):
    """
    Module logger wired to the shared queue. The first call starts the listener;
    `log_file` only matters for that first call.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else logging.DEBUG)
    logger.propagate = False
    if not any(isinstance(h, QueueHandler) for h in logger.handlers):
        logger.addHandler(QueueHandler(_log_queue))

    with _lock:
        if _listener is None:
            _start_listener(log_file)
    return logger


# ========================
# Runtime controls
# ========================
_OFF_NAMES = ("OFF", "DISABLED", "NONE")


def _normalize_level(level_name):
    """
    Logging level int for a name or int. "OFF" maps to a level above CRITICAL.
    Raises ValueError for unknown names.
    """
    if isinstance(level_name, int):
        return level_name
    if level_name is None:
        raise ValueError("level_name cannot be None")

    name = str(level_name).strip().upper()
    if name in _OFF_NAMES:
        return logging.CRITICAL + 1
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_name!r}")
    return level


def set_console_level(level_name):
    """Console threshold; applied on listener start if called before the first logger exists."""
    global _pending_console_level
    level = _normalize_level(level_name)
    with _lock:
        if _console_handler is None:
            _pending_console_level = level
        else:
            _console_handler.setLevel(level)


def stop_logging():
    """Drain the queue and stop the listener."""
    global _listener
    with _lock:
        if _listener is not None:
            _listener.stop()
            _listener = None


def log_standout_text(logger, content, title=None, color=Fore.LIGHTMAGENTA_EX):
    """INFO record highlighted with colorama (batch summaries)."""
    body = f"{color}{content}{Style.RESET_ALL}"
    if title:
        body = f"{color}{title}{Style.RESET_ALL}\n{body}"
    logger.info(body)
