"""Logging setup and the in-memory log store."""

import logging
import threading
import time
from typing import Optional

MAX_LOG_CHARS = 5000


class LogStore(logging.Handler):
    """Keeps the most recent log text in memory for embedding hosts."""

    def __init__(self, max_chars: int = MAX_LOG_CHARS):
        super().__init__()
        self.max_chars = max_chars
        self._text = ""
        self._text_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            when = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.created))
            entry = f"{when} {self.format(record)}\r\n"
        except Exception:
            self.handleError(record)
            return

        with self._text_lock:
            text = self._text + entry
            if len(text) > self.max_chars:
                text = text[-self.max_chars :]
            self._text = text

    def get_text(self) -> str:
        with self._text_lock:
            return self._text

    def clear(self) -> None:
        with self._text_lock:
            self._text = ""


_store: Optional[LogStore] = None
_store_lock = threading.Lock()


def get_log_store() -> LogStore:
    """Return the process-wide log store, attaching it on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = LogStore()
            logging.getLogger("tunlink").addHandler(_store)
        return _store


def get_log_messages() -> str:
    """Return the recently logged text."""
    return get_log_store().get_text()


def configure_logging(log_level: str = "info") -> None:
    """Configure TunLink logging at the given level."""
    level = getattr(logging, log_level.upper())
    logging.basicConfig(
        level=level,
        format="[TunLink] %(message)s",
    )
    logging.getLogger("tunlink").setLevel(level)
    get_log_store()
