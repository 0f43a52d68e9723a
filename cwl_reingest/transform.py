from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from . import codec
from .records import (
    RESULT_DROPPED,
    RESULT_OK,
    RESULT_PROCESSING_FAILED,
    InputRecord,
    InvocationBatch,
    OutputRecord,
)

logger = logging.getLogger(__name__)

CONTROL_MESSAGE = "CONTROL_MESSAGE"
DATA_MESSAGE = "DATA_MESSAGE"


class EnvelopeError(ValueError):
    """The inflated payload is not a CloudWatch Logs subscription envelope."""


@dataclass(frozen=True)
class LogEntry:
    id: str
    timestamp: int | None
    message: str


@dataclass(frozen=True)
class LogEnvelope:
    message_type: str
    owner: str = ""
    log_group: str = ""
    log_stream: str = ""
    subscription_filters: list[str] = field(default_factory=list)
    log_events: list[LogEntry] = field(default_factory=list)


def _parse_log_event(raw) -> LogEntry:
    if not isinstance(raw, dict):
        raise EnvelopeError(f"log event must be an object, got {type(raw).__name__}")
    event_id = raw.get("id")
    timestamp = raw.get("timestamp")
    message = raw.get("message")
    if event_id is not None and not isinstance(event_id, str):
        raise EnvelopeError(f"log event id must be a string, got {type(event_id).__name__}")
    if timestamp is not None and (isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))):
        raise EnvelopeError(f"log event timestamp must be a number, got {type(timestamp).__name__}")
    if message is not None and not isinstance(message, str):
        raise EnvelopeError(f"log event message must be a string, got {type(message).__name__}")
    return LogEntry(
        id=event_id or "",
        timestamp=timestamp,
        message=message or "",
    )


def parse_envelope(raw: bytes) -> LogEnvelope:
    try:
        payload = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise EnvelopeError(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise EnvelopeError(f"envelope must be an object, got {type(payload).__name__}")

    events = payload.get("logEvents") or []
    if not isinstance(events, list):
        raise EnvelopeError("logEvents must be a list")
    filters = payload.get("subscriptionFilters") or []
    if not isinstance(filters, list):
        raise EnvelopeError("subscriptionFilters must be a list")

    return LogEnvelope(
        message_type=str(payload.get("messageType") or ""),
        owner=str(payload.get("owner") or ""),
        log_group=str(payload.get("logGroup") or ""),
        log_stream=str(payload.get("logStream") or ""),
        subscription_filters=[str(f) for f in filters],
        log_events=[_parse_log_event(e) for e in events],
    )


def transform_log_event(entry: LogEntry) -> str:
    """Turn one log event into one output line. An empty string drops the event."""
    return entry.message


def transform_envelope(envelope: LogEnvelope) -> tuple[str, str | None]:
    """Classify an envelope and return ``(result, base64 data or None)``."""
    if envelope.message_type == CONTROL_MESSAGE:
        # Sent by CloudWatch Logs to check the subscription is reachable; carries no log data.
        return RESULT_DROPPED, None

    if envelope.message_type != DATA_MESSAGE:
        return RESULT_PROCESSING_FAILED, None

    lines = []
    for entry in envelope.log_events:
        line = transform_log_event(entry)
        if line:
            lines.append(line)
    if not lines:
        return RESULT_DROPPED, None

    data = "\n".join(lines) + "\n"
    return RESULT_OK, codec.encode(data.encode("utf-8"))


def transform_record(record: InputRecord) -> OutputRecord:
    try:
        envelope = parse_envelope(codec.decode_and_decompress(record.data))
    except (codec.CodecError, EnvelopeError) as exc:
        logger.warning("record %s could not be processed: %s", record.record_id, exc)
        return OutputRecord(record_id=record.record_id, result=RESULT_PROCESSING_FAILED)

    result, data = transform_envelope(envelope)
    if result == RESULT_PROCESSING_FAILED:
        logger.warning("record %s has unknown messageType %r", record.record_id, envelope.message_type)
    return OutputRecord(record_id=record.record_id, result=result, data=data)


def transform_records(batch: InvocationBatch) -> list[OutputRecord]:
    results = []
    for record in batch.records:
        output = transform_record(record)
        if batch.is_sharded:
            output.partition_key = record.partition_key or ""
        results.append(output)
    return results
