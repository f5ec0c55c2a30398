"""Logging setup and the in-memory buffer behind ``/api/logs/recent``."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Deque

LOG_BUFFER_SIZE = 100

# Circular buffer of recent log entries
log_buffer: Deque[dict] = deque(maxlen=LOG_BUFFER_SIZE)


class LogBufferHandler(logging.Handler):
    """Logging handler that captures records into the circular buffer."""

    def __init__(self, buffer: Deque[dict] | None = None):
        super().__init__()
        self.buffer = log_buffer if buffer is None else buffer

    def emit(self, record: logging.LogRecord):
        try:
            self.buffer.append({
                "timestamp": datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                "level": record.levelname,
                "logger": record.name,
                "message": self.format(record),
            })
        except Exception:
            self.handleError(record)


_buffer_handler: LogBufferHandler | None = None


def setup_logging(level: int = logging.INFO) -> LogBufferHandler:
    """Attach the buffer handler to the liveplan, uvicorn and fastapi loggers.

    Safe to call more than once; the handler is only installed the first time.
    """
    global _buffer_handler
    if _buffer_handler is None:
        _buffer_handler = LogBufferHandler()
        _buffer_handler.setLevel(logging.DEBUG)
        _buffer_handler.setFormatter(logging.Formatter("%(message)s"))
        for name in ("liveplan", "uvicorn", "fastapi"):
            logging.getLogger(name).addHandler(_buffer_handler)
    logging.getLogger("liveplan").setLevel(level)
    return _buffer_handler


def recent_logs(limit: int = 50) -> list[dict]:
    """Return the most recent ``limit`` buffered entries, oldest first."""
    limit = max(0, min(limit, LOG_BUFFER_SIZE))
    if limit == 0:
        return []
    return list(log_buffer)[-limit:]
