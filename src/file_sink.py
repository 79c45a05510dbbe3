"""
Line Logger File Sink
Durable, date-partitioned, append-only storage for rendered lines.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, Optional, TextIO

import structlog

logger = structlog.get_logger()

DAY_FORMAT = "%Y-%m-%d"
FILE_SUFFIX = ".log"


class SinkError(Exception):
    """Base error for sink operations."""
    pass


class SinkOpenError(SinkError):
    """Raised when the log directory or today's file cannot be created."""
    pass


class SinkWriteError(SinkError):
    """Raised when a line cannot be written and flushed to storage."""
    pass


class SinkClosedError(SinkError):
    """Raised on any write after close()."""
    pass


class WriteCancelledError(SinkError):
    """Raised when the caller cancelled before the write started."""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_string(timestamp: datetime) -> str:
    """Return the UTC calendar date of a timestamp as YYYY-MM-DD."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime(DAY_FORMAT)


def _append_durably(handle: TextIO, line: str) -> None:
    handle.write(line + "\n")
    handle.flush()
    os.fsync(handle.fileno())


class FileSink:
    """
    Append lines to one file per UTC day.

    Only today's file is kept open. Lines dated on any other day are
    written through a handle that is opened and closed for that single
    write. One lock serializes rotation, writes and close.
    """

    def __init__(self, log_dir: str, clock: Optional[Callable[[], datetime]] = None):
        self.log_dir = Path(log_dir)
        self._clock = clock or utc_now
        self._lock = Lock()
        self._closed = False

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SinkOpenError(f"create log directory {self.log_dir}: {e}") from e

        today = day_string(self._clock())
        try:
            self._handle: Optional[TextIO] = self._open_day(today)
        except OSError as e:
            raise SinkOpenError(f"open today's log file: {e}") from e
        self._day = today

        logger.info("sink_opened", log_dir=str(self.log_dir), day=today)

    def path_for(self, day: str) -> Path:
        """Path of the file holding lines for the given YYYY-MM-DD day."""
        return self.log_dir / f"{day}{FILE_SUFFIX}"

    @property
    def current_day(self) -> str:
        return self._day

    @property
    def closed(self) -> bool:
        return self._closed

    def _open_day(self, day: str) -> TextIO:
        return open(self.path_for(day), "a", encoding="utf-8")

    def _rotate_if_needed(self) -> None:
        """Switch the cached handle to today's file if the UTC date moved on."""
        today = day_string(self._clock())
        if today == self._day and self._handle is not None:
            return

        if self._handle is not None:
            try:
                self._handle.close()
            except OSError as e:
                logger.warning("sink_stale_close_failed", day=self._day, error=str(e))
            self._handle = None

        try:
            self._handle = self._open_day(today)
        except OSError as e:
            logger.error("sink_rotation_failed", day=today, error=str(e))
            raise SinkWriteError(f"open new current day file: {e}") from e

        logger.info("sink_rotated", previous_day=self._day, day=today)
        self._day = today

    def write(self, line: str, timestamp: datetime, cancel=None) -> None:
        """
        Append a line to the file for the timestamp's UTC date.

        Args:
            line: Rendered, newline-free log line
            timestamp: Event instant used to pick the dated file
            cancel: Optional threading.Event-like object; if already set,
                nothing is written

        Raises:
            WriteCancelledError: cancel was set on entry
            SinkClosedError: the sink has been closed
            SinkWriteError: the line could not be written or flushed
        """
        if cancel is not None and cancel.is_set():
            raise WriteCancelledError("write cancelled by caller")

        with self._lock:
            if self._closed:
                raise SinkClosedError("file sink is closed")

            self._rotate_if_needed()
            target_day = day_string(timestamp)

            if target_day == self._day:
                try:
                    _append_durably(self._handle, line)
                except OSError as e:
                    logger.error("sink_write_failed", day=target_day, error=str(e))
                    raise SinkWriteError(f"write to current day file: {e}") from e
                return

            target_path = self.path_for(target_day)
            try:
                with open(target_path, "a", encoding="utf-8") as handle:
                    _append_durably(handle, line)
            except OSError as e:
                logger.error("sink_write_failed", day=target_day, error=str(e))
                raise SinkWriteError(f"write to dated file {target_path}: {e}") from e

            logger.debug("sink_cross_day_write", day=target_day, current_day=self._day)

    def close(self) -> None:
        """Close the cached handle; further writes raise SinkClosedError."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            handle, self._handle = self._handle, None
            if handle is not None:
                try:
                    handle.close()
                except OSError as e:
                    raise SinkError(f"close current day file: {e}") from e
            logger.info("sink_closed", log_dir=str(self.log_dir))

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
