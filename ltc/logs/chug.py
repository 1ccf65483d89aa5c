"""
Best-effort parsing of structured component logs.

Lattice components emit JSON log lines (``timestamp``, ``source``,
``message``, ``log_level``, ``data``) that may be preceded by arbitrary
text. :func:`chug_log_message` finds the first ``{`` and tries to decode a
record from there; anything that does not fit falls back to raw output.
"""

import json
from datetime import datetime
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field

from ltc.logs.envelope import LogMessage


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    ERROR = 2
    FATAL = 3


class LogEntry(BaseModel):
    """A decoded structured record."""

    timestamp: datetime
    log_level: LogLevel
    source: str = ""
    message: str = ""
    session: str = ""
    error: str | None = None
    trace: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class Entry(BaseModel):
    """A log message together with its structured record, if any."""

    is_structured: bool = False
    log_message: LogMessage
    raw: bytes = b""
    log: LogEntry | None = None


def chug_log_message(log_message: LogMessage) -> Entry:
    """
    Split a log message into raw bytes and, when present, a structured record.

    Examples
    --------
    >>> message = LogMessage(message=b'rep.1 {"timestamp":"1.5","source":"rep","message":"hi","log_level":1,"data":{}}')
    >>> chug_log_message(message).is_structured
    True
    >>> chug_log_message(LogMessage(message=b"plain text")).is_structured
    False
    """
    entry = Entry(log_message=log_message, raw=log_message.message)

    raw = log_message.text
    start = raw.find("{")
    if start == -1:
        return entry

    try:
        record, _ = json.JSONDecoder().raw_decode(raw, start)
    except ValueError:
        return entry

    log = _convert(record)
    if log is not None:
        entry.is_structured = True
        entry.log = log
    return entry


def _convert(record: Any) -> LogEntry | None:
    if not isinstance(record, dict):
        return None

    try:
        timestamp = datetime.fromtimestamp(float(record.get("timestamp")))
        level = LogLevel(record.get("log_level"))
    except (TypeError, ValueError, OverflowError, OSError):
        return None

    data = record.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None
    data = dict(data)

    error = None
    if level in (LogLevel.ERROR, LogLevel.FATAL) and "error" in data:
        error = data.pop("error")
        if not isinstance(error, str):
            return None

    trace = data.pop("trace", "")
    if not isinstance(trace, str):
        return None

    session = data.pop("session", "")
    if not isinstance(session, str):
        return None

    source = record.get("source", "")
    message = record.get("message", "")
    if not isinstance(source, str) or not isinstance(message, str):
        return None

    return LogEntry(
        timestamp=timestamp,
        log_level=level,
        source=source,
        message=message,
        session=session,
        error=error,
        trace=trace,
        data=data,
    )
