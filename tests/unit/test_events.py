from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from events import Event, EventPayload, EventValidationError, LogLevel, parse_log_level, parse_timestamp


def _payload(**overrides):
    values = dict(timestamp="2026-02-09T12:34:56Z", level="info", message="Hello")
    values.update(overrides)
    return EventPayload(**values)


def test_valid_payload():
    event = _payload(level="INFO", fields={"k": "v"}).to_event()

    assert event.level == LogLevel.INFO
    assert event.message == "Hello"
    assert event.timestamp == datetime(2026, 2, 9, 12, 34, 56, tzinfo=timezone.utc)
    assert event.fields == {"k": "v"}
    assert event.app == ""
    assert event.user == ""


def test_offset_timestamp_normalized_to_utc():
    event = _payload(timestamp="2026-02-10T01:00:00+02:00").to_event()

    assert event.timestamp == datetime(2026, 2, 9, 23, 0, tzinfo=timezone.utc)
    assert event.timestamp.utcoffset() == timedelta(0)


@pytest.mark.parametrize(
    "raw",
    [
        "invalid",
        "2026-02-09",
        "2026-02-09T12:34:56",
        "20260209T123456Z",
        "2026-02-09 12:34:56Z",
        "2026-W07-1T12:34:56Z",
        "2026-02-09T12:34Z",
        "2026-02-09T12:34:56+0200",
        "2026-13-09T12:34:56Z",
    ],
)
def test_invalid_timestamp(raw):
    with pytest.raises(EventValidationError, match="RFC3339"):
        _payload(timestamp=raw).to_event()


def test_missing_timestamp():
    with pytest.raises(EventValidationError, match="missing field: timestamp"):
        _payload(timestamp="  ").to_event()


def test_invalid_level():
    with pytest.raises(EventValidationError, match="unsupported level"):
        _payload(level="verbose").to_event()


def test_level_is_trimmed_and_lowercased():
    assert parse_log_level("  Warn ") == LogLevel.WARN


def test_empty_message():
    with pytest.raises(EventValidationError, match="missing field: message"):
        _payload(message="   ").to_event()


def test_message_app_and_user_are_trimmed():
    event = _payload(message="  hi  ", app=" svc ", user=" bob ").to_event()

    assert event.message == "hi"
    assert event.app == "svc"
    assert event.user == "bob"


def test_timestamp_window():
    now = datetime(2026, 2, 9, 12, 0, tzinfo=timezone.utc)
    window = timedelta(days=1)

    inside = _payload(timestamp="2026-02-08T13:00:00Z").to_event(now=now, window=window)
    assert inside.timestamp.day == 8

    with pytest.raises(EventValidationError, match="window"):
        _payload(timestamp="2026-02-07T12:34:56Z").to_event(now=now, window=window)


def test_no_window_by_default():
    event = _payload(timestamp="1999-01-01T00:00:00Z").to_event()
    assert event.timestamp.year == 1999


def test_event_is_immutable():
    event = _payload().to_event()

    with pytest.raises(ValidationError):
        event.message = "changed"


def test_event_rejects_blank_message():
    with pytest.raises(ValidationError):
        Event(timestamp=datetime.now(timezone.utc), level="info", message=" ")


def test_event_assumes_utc_for_naive_timestamp():
    event = Event(timestamp=datetime(2026, 2, 9, 12, 0), level="debug", message="m")
    assert event.timestamp.tzinfo == timezone.utc


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2026-02-09t12:34:56z", datetime(2026, 2, 9, 12, 34, 56, tzinfo=timezone.utc)),
        ("2026-02-09T12:34:56.5Z", datetime(2026, 2, 9, 12, 34, 56, 500000, tzinfo=timezone.utc)),
        ("2026-02-09T12:34:56.123456789Z", datetime(2026, 2, 9, 12, 34, 56, 123456, tzinfo=timezone.utc)),
        ("2026-02-09T07:34:56-05:00", datetime(2026, 2, 9, 12, 34, 56, tzinfo=timezone.utc)),
    ],
)
def test_rfc3339_variants(raw, expected):
    assert parse_timestamp(raw) == expected
