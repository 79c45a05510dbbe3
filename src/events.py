"""
Line Logger Events
Wire payload, validation and the normalized in-memory Event.
"""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogLevel(str, Enum):
    """Normalized log levels."""
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


RFC3339_PATTERN = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})",
    re.ASCII,
)


class EventValidationError(ValueError):
    """Raised when an incoming payload cannot become an Event."""
    pass


def parse_log_level(raw: str) -> LogLevel:
    """Normalize a level string into a LogLevel."""
    level = (raw or "").strip().lower()
    try:
        return LogLevel(level)
    except ValueError:
        raise EventValidationError(f"unsupported level: {raw!r}") from None


def parse_timestamp(raw: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    ts = (raw or "").strip()
    if not ts:
        raise EventValidationError("missing field: timestamp")

    match = RFC3339_PATTERN.fullmatch(ts)
    if match is None:
        raise EventValidationError("invalid timestamp: must be RFC3339")

    day, clock, fraction, offset = match.groups()
    # fromisoformat wants exactly six fraction digits before 3.11
    micros = (fraction or "")[:6].ljust(6, "0")
    if offset in ("Z", "z"):
        offset = "+00:00"

    try:
        parsed = datetime.fromisoformat(f"{day}T{clock}.{micros}{offset}")
    except ValueError:
        raise EventValidationError("invalid timestamp: must be RFC3339") from None

    return parsed.astimezone(timezone.utc)


class Event(BaseModel):
    """Validated, normalized representation of one log occurrence."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    level: LogLevel
    message: str = Field(..., min_length=1)
    app: str = ""
    user: str = ""
    fields: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("message")
    @classmethod
    def _strip_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be empty")
        return value


class EventPayload(BaseModel):
    """JSON payload as received over HTTP."""

    timestamp: str = ""
    level: str = ""
    message: str = ""
    app: Optional[str] = None
    user: Optional[str] = None
    fields: Optional[Dict[str, Any]] = None

    def to_event(
        self,
        now: Optional[datetime] = None,
        window: Optional[timedelta] = None
    ) -> Event:
        """
        Validate and normalize the payload into an Event.

        Args:
            now: Reference instant for the timestamp window (defaults to now, UTC)
            window: Accepted distance from `now`; None disables the check

        Raises:
            EventValidationError: On any missing or malformed field
        """
        timestamp = parse_timestamp(self.timestamp)
        level = parse_log_level(self.level)

        message = self.message.strip()
        if not message:
            raise EventValidationError("missing field: message")

        if window is not None:
            reference = now or datetime.now(timezone.utc)
            if abs(timestamp - reference) > window:
                raise EventValidationError("timestamp outside accepted window")

        return Event(
            timestamp=timestamp,
            level=level,
            message=message,
            app=(self.app or "").strip(),
            user=(self.user or "").strip(),
            fields=dict(self.fields or {}),
        )
