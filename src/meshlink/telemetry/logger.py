"""
Async queue-based logging system.

Log records are queued and written by a background thread so that
console or file I/O never stalls the event loop running the probes.
Every record is stamped with the endpoint that was active when it was
emitted, so a log read after a failover shows which backend each line
belongs to.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import Queue

from meshlink.config.constants import (
    LOG_DATE_FORMAT,
    LOG_FORMAT,
    LOG_NO_ENDPOINT,
    MAX_LOG_QUEUE_SIZE,
)


# Third-party loggers meshlink drives: the HTTP/websocket client and the loop
QUIET_LOGGERS = ("aiohttp.client", "aiohttp.websocket", "asyncio")


class MicrosecondFormatter(logging.Formatter):
    """Formatter with microsecond precision timestamps."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ct = datetime.fromtimestamp(record.created)
        return f"{ct.strftime(datefmt or LOG_DATE_FORMAT)}.{ct.microsecond:06d}"


class ActiveEndpointFilter(logging.Filter):
    """
    Stamp records with the active endpoint id.

    Records that already carry an `endpoint` attribute (passed through
    `extra=`) keep it, so probe logs can name the endpoint they measured.
    """

    def __init__(self) -> None:
        super().__init__()
        self._endpoint_id: str | None = None

    def bind(self, endpoint_id: str | None) -> None:
        """Set the endpoint stamped on subsequent records."""
        self._endpoint_id = endpoint_id

    @property
    def endpoint_id(self) -> str | None:
        return self._endpoint_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "endpoint", None):
            record.endpoint = self._endpoint_id or LOG_NO_ENDPOINT
        return True


class AsyncLogger:
    """
    Async-friendly logger with queue-based output.

    All logging calls are non-blocking; records are stamped with the
    active endpoint, queued, and written by a background thread.
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        log_file: Path | None = None,
    ) -> None:
        """
        Initialize async logger.

        Args:
            name: Root of the logger tree to capture.
            level: Logging level.
            log_file: Optional file path; the file receives DEBUG and up.
        """
        self._level = level
        self._log_file = log_file
        self._queue: Queue[logging.LogRecord] = Queue(maxsize=MAX_LOG_QUEUE_SIZE)
        self._listener: QueueListener | None = None
        self._queue_handler: QueueHandler | None = None
        self._endpoint_filter = ActiveEndpointFilter()
        self._logger = logging.getLogger(name)

    def _build_handlers(self) -> list[logging.Handler]:
        formatter = MicrosecondFormatter(LOG_FORMAT, LOG_DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(self._level)
        handlers: list[logging.Handler] = [console_handler]

        if self._log_file:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self._log_file)
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)
            handlers.append(file_handler)

        return handlers

    def start(self) -> None:
        """Start the background writer."""
        self._queue_handler = QueueHandler(self._queue)
        # Stamp in the caller's thread so the id matches the moment of the call
        self._queue_handler.addFilter(self._endpoint_filter)
        self._logger.addHandler(self._queue_handler)
        self._logger.setLevel(self._level)

        self._listener = QueueListener(
            self._queue,
            *self._build_handlers(),
            respect_handler_level=True,
        )
        self._listener.start()

    def stop(self) -> None:
        """Flush queued records and stop the listener thread."""
        if self._listener:
            self._listener.stop()
            self._listener = None

        if self._queue_handler:
            self._logger.removeHandler(self._queue_handler)
            self._queue_handler = None

    def bind_endpoint(self, endpoint_id: str | None) -> None:
        """Stamp subsequent records with a new active endpoint."""
        self._endpoint_filter.bind(endpoint_id)

    @property
    def endpoint_id(self) -> str | None:
        """Endpoint currently stamped on records."""
        return self._endpoint_filter.endpoint_id

    @property
    def logger(self) -> logging.Logger:
        """Get the underlying logger."""
        return self._logger

    @property
    def is_running(self) -> bool:
        """Check if the listener thread is active."""
        return self._listener is not None

    def __enter__(self) -> "AsyncLogger":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
) -> AsyncLogger:
    """
    Set up logging for the `meshlink` logger tree.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path.

    Returns:
        Started AsyncLogger; bind it to the active endpoint as it changes.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    async_logger = AsyncLogger(name="meshlink", level=numeric_level, log_file=log_file)
    async_logger.start()

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return async_logger
