"""
Decoder for dropsonde ``Envelope`` frames sent by doppler.

Doppler pushes protobuf-encoded envelopes over its WebSocket endpoints.
The CLI only reads two event types, ``LogMessage`` and ``ContainerMetric``,
so only the fields those carry are decoded; everything else is skipped by
wire type.
"""

import struct
from collections.abc import Iterator
from enum import IntEnum

from pydantic import BaseModel

from ltc.common.exceptions import LatticeError


class EnvelopeDecodeError(LatticeError):
    """Raised when a frame is not a well-formed envelope."""

    pass


class EventType(IntEnum):
    HTTP_START = 2
    HTTP_STOP = 3
    HTTP_START_STOP = 4
    LOG_MESSAGE = 5
    VALUE_METRIC = 6
    COUNTER_EVENT = 7
    ERROR = 8
    CONTAINER_METRIC = 9


class MessageType(IntEnum):
    OUT = 1
    ERR = 2


class LogMessage(BaseModel):
    """One line of application or component output."""

    message: bytes = b""
    message_type: int = MessageType.OUT
    timestamp: int = 0
    app_id: str = ""
    source_type: str = ""
    source_instance: str = ""

    @property
    def text(self) -> str:
        return self.message.decode("utf-8", errors="replace")


class ContainerMetric(BaseModel):
    """Resource usage of one app instance."""

    application_id: str = ""
    instance_index: int = 0
    cpu_percentage: float = 0.0
    memory_bytes: int = 0
    disk_bytes: int = 0


class Envelope(BaseModel):
    origin: str = ""
    event_type: int = 0
    timestamp: int = 0
    log_message: LogMessage | None = None
    container_metric: ContainerMetric | None = None


# Wire types
_VARINT = 0
_FIXED64 = 1
_LENGTH_DELIMITED = 2
_FIXED32 = 5


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise EnvelopeDecodeError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 64:
            raise EnvelopeDecodeError("varint too long")


def _fields(data: bytes) -> Iterator[tuple[int, int, int | bytes]]:
    """Yield ``(field_number, wire_type, value)`` for every field in ``data``."""
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        field_number, wire_type = key >> 3, key & 0x07
        if wire_type == _VARINT:
            value, pos = _read_varint(data, pos)
        elif wire_type == _FIXED64:
            value, pos = data[pos : pos + 8], pos + 8
        elif wire_type == _LENGTH_DELIMITED:
            length, pos = _read_varint(data, pos)
            value, pos = data[pos : pos + length], pos + length
        elif wire_type == _FIXED32:
            value, pos = data[pos : pos + 4], pos + 4
        else:
            raise EnvelopeDecodeError(f"unsupported wire type {wire_type}")
        if pos > len(data):
            raise EnvelopeDecodeError("truncated field")
        yield field_number, wire_type, value


def _signed64(value: int) -> int:
    return value - (1 << 64) if value >= 1 << 63 else value


def _decode_log_message(data: bytes) -> LogMessage:
    log = LogMessage()
    for number, wire_type, value in _fields(data):
        if number == 1 and wire_type == _LENGTH_DELIMITED:
            log.message = bytes(value)
        elif number == 2 and wire_type == _VARINT:
            log.message_type = value
        elif number == 3 and wire_type == _VARINT:
            log.timestamp = _signed64(value)
        elif number == 4 and wire_type == _LENGTH_DELIMITED:
            log.app_id = value.decode("utf-8", errors="replace")
        elif number == 5 and wire_type == _LENGTH_DELIMITED:
            log.source_type = value.decode("utf-8", errors="replace")
        elif number == 6 and wire_type == _LENGTH_DELIMITED:
            log.source_instance = value.decode("utf-8", errors="replace")
    return log


def _decode_container_metric(data: bytes) -> ContainerMetric:
    metric = ContainerMetric()
    for number, wire_type, value in _fields(data):
        if number == 1 and wire_type == _LENGTH_DELIMITED:
            metric.application_id = value.decode("utf-8", errors="replace")
        elif number == 2 and wire_type == _VARINT:
            metric.instance_index = value
        elif number == 3 and wire_type == _FIXED64:
            metric.cpu_percentage = struct.unpack("<d", value)[0]
        elif number == 4 and wire_type == _VARINT:
            metric.memory_bytes = value
        elif number == 5 and wire_type == _VARINT:
            metric.disk_bytes = value
    return metric


def decode_envelope(data: bytes) -> Envelope:
    """
    Decode one binary WebSocket frame.

    Raises
    ------
    EnvelopeDecodeError
        If the frame is truncated or uses an unknown wire type
    """
    envelope = Envelope()
    for number, wire_type, value in _fields(data):
        if number == 1 and wire_type == _LENGTH_DELIMITED:
            envelope.origin = value.decode("utf-8", errors="replace")
        elif number == 2 and wire_type == _VARINT:
            envelope.event_type = value
        elif number == 6 and wire_type == _VARINT:
            envelope.timestamp = _signed64(value)
        elif number == 8 and wire_type == _LENGTH_DELIMITED:
            envelope.log_message = _decode_log_message(value)
        elif number == 12 and wire_type == _LENGTH_DELIMITED:
            envelope.container_metric = _decode_container_metric(value)
    return envelope
