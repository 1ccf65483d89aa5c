"""Column-aligned, colored rendering of component debug logs."""

import json
from datetime import datetime

from rich.text import Text

from ltc.logs.chug import Entry, LogLevel, chug_log_message
from ltc.logs.envelope import LogMessage

SOURCE_COLORS = {
    "rep": "blue",
    "garden-linux": "magenta",
}

SOURCE_PREFIX_WIDTH = 22
LEVEL_WIDTH = 9
TIMESTAMP_WIDTH = 17
SESSION_WIDTH = 14
DETAIL_INDENT = 66

LEVEL_COLORS = {
    LogLevel.DEBUG: "bright_black",
    LogLevel.ERROR: "red",
    LogLevel.FATAL: "red",
}


def format_timestamp(moment: datetime) -> str:
    """``MM/DD HH:MM:SS.cc`` with hundredths of a second."""
    return f"{moment:%m/%d %H:%M:%S}.{moment.microsecond // 10000:02d}"


def _padded(text: str, width: int, style: str = "") -> Text:
    return Text(text.ljust(width), style=style)


def prettify(log_message: LogMessage) -> Text:
    """
    Render one debug log message.

    Structured records get level, timestamp, session and message columns
    colored by level (INFO takes the color of the emitting component);
    error and data follow on indented lines. Other messages are printed
    raw under the same columns.
    """
    entry = chug_log_message(log_message)

    color = SOURCE_COLORS.get(log_message.source_type.split(":")[0], "")
    prefix = Text("[")
    prefix.append(log_message.source_type, style=color)
    prefix.append("|")
    prefix.append(log_message.source_instance, style=color)
    prefix.append("]")
    prefix.pad_right(SOURCE_PREFIX_WIDTH - prefix.cell_len)

    components = [prefix]
    if entry.is_structured:
        components.extend(_pretty_print_log(entry, color))
    else:
        components.extend(_pretty_print_raw(entry))
    return Text(" ").join(components)


def _pretty_print_log(entry: Entry, source_color: str) -> list[Text]:
    log = entry.log
    style = LEVEL_COLORS.get(log.log_level, source_color)

    components = [
        _padded(f"[{log.log_level.name}]", LEVEL_WIDTH, style),
        _padded(format_timestamp(log.timestamp), TIMESTAMP_WIDTH, style),
        _padded(log.session, SESSION_WIDTH, style),
        Text(log.message, style=style),
    ]

    details = Text()
    if log.error is not None:
        details.append("\n" + " " * DETAIL_INDENT)
        details.append(log.error, style=style)
    if log.data:
        details.append("\n" + " " * DETAIL_INDENT)
        details.append(json.dumps(log.data, separators=(",", ":")), style=style)
    if details:
        components[-1].append_text(details)
    return components


def _pretty_print_raw(entry: Entry) -> list[Text]:
    moment = datetime.fromtimestamp(entry.log_message.timestamp / 1e9)
    return [
        Text(" " * LEVEL_WIDTH),
        _padded(format_timestamp(moment), TIMESTAMP_WIDTH),
        Text(" " * SESSION_WIDTH),
        Text(entry.raw.decode("utf-8", errors="replace")),
    ]
