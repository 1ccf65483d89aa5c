"""Log streaming from doppler and terminal presentation of log lines."""

from .consumer import NoaaConsumer
from .envelope import ContainerMetric, LogMessage, decode_envelope
from .outputter import ConsoleTailedLogsOutputter
from .reader import LogReader

__all__ = [
    "ConsoleTailedLogsOutputter",
    "ContainerMetric",
    "LogMessage",
    "LogReader",
    "NoaaConsumer",
    "decode_envelope",
]
