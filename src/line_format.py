"""
Line Logger Formatter
Renders an Event into one deterministic, newline-free line.
"""

from datetime import timezone
from enum import Enum
from typing import Any

import orjson

from events import Event

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
FIELDS_SEPARATOR = " | "

# Every known tag occupies exactly 7 characters, brackets included.
LEVEL_TAGS = {
    "debug": "[DEBUG]",
    "info": "[INFO] ",
    "warn": "[WARN] ",
    "error": "[ERROR]",
}

_JSON_NATIVE = (bool, int, float, list, tuple, dict, type(None))


def sanitize(text: str) -> str:
    """Replace carriage returns and line feeds with tabs."""
    return text.replace("\r", "\t").replace("\n", "\t")


def level_tag(level: Any) -> str:
    """Return the bracketed level tag for a LogLevel or raw level string."""
    raw = str(getattr(level, "value", level))
    return LEVEL_TAGS.get(raw, f"[{raw.upper()}]")


def format_value(value: Any) -> str:
    """Stringify a field value; never raises."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        return value

    if not isinstance(value, _JSON_NATIVE) and type(value).__str__ is not object.__str__:
        return str(value)

    try:
        return orjson.dumps(value, option=orjson.OPT_SORT_KEYS).decode("utf-8")
    except TypeError:
        # orjson.JSONEncodeError subclasses TypeError
        return str(value)


def format_event(event: Event) -> str:
    """
    Render an Event as a single log line.

    Layout: ``[timestamp] [LEVEL] [app] [user] message | k1=v1 k2=v2``
    with the app and user tags omitted when empty and the fields
    section omitted when there are no fields. Keys are sorted.
    """
    timestamp = event.timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    tag = level_tag(event.level)

    segments = []
    if event.app:
        segments.append(f"[{sanitize(event.app)}]")
    if event.user:
        segments.append(f"[{sanitize(event.user)}]")
    segments.append(sanitize(event.message))

    line = f"[{timestamp}] {tag} {' '.join(segments)}"

    if not event.fields:
        return line

    pairs = [
        f"{sanitize(str(key))}={sanitize(format_value(event.fields[key]))}"
        for key in sorted(event.fields)
    ]
    return line + FIELDS_SEPARATOR + " ".join(pairs)
