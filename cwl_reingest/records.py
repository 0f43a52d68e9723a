from __future__ import annotations

from dataclasses import dataclass, field

from . import codec

RESULT_OK = "Ok"
RESULT_DROPPED = "Dropped"
RESULT_PROCESSING_FAILED = "ProcessingFailed"


class InvalidEventError(ValueError):
    """The invocation request cannot be processed at all."""


def _field(mapping, name, default=None):
    # Firehose sends camelCase keys; hand-built test events are not always consistent.
    if not isinstance(mapping, dict):
        return default
    if name in mapping:
        return mapping[name]
    lowered = name.lower()
    for key, value in mapping.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return default


@dataclass(frozen=True)
class ReingestRecord:
    data: bytes
    partition_key: str | None = None


@dataclass(frozen=True)
class InputRecord:
    record_id: str
    approximate_arrival_timestamp: int | None
    data: str
    partition_key: str | None = None

    def reingest_record(self, is_sharded: bool) -> ReingestRecord:
        """Rebuild the record as it originally arrived, ready to be put back on the stream."""
        raw = codec.decode(self.data)
        if is_sharded:
            return ReingestRecord(data=raw, partition_key=self.partition_key or "")
        return ReingestRecord(data=raw)

    @classmethod
    def from_dict(cls, raw: dict, is_sharded: bool) -> "InputRecord":
        if not isinstance(raw, dict):
            raise InvalidEventError(f"record must be an object, got {type(raw).__name__}")
        record_id = _field(raw, "recordId")
        if record_id in (None, ""):
            raise InvalidEventError("record is missing recordId")

        partition_key = None
        if is_sharded:
            metadata = _field(raw, "kinesisRecordMetadata") or _field(raw, "kinesisMetadata") or {}
            partition_key = _field(metadata, "partitionKey")
            partition_key = "" if partition_key is None else str(partition_key)

        return cls(
            record_id=str(record_id),
            approximate_arrival_timestamp=_field(raw, "approximateArrivalTimestamp"),
            data=_field(raw, "data") or "",
            partition_key=partition_key,
        )


@dataclass(frozen=True)
class InvocationBatch:
    invocation_id: str
    delivery_stream_arn: str
    source_kinesis_stream_arn: str
    region: str
    records: list[InputRecord] = field(default_factory=list)

    @property
    def is_sharded(self) -> bool:
        return bool(self.source_kinesis_stream_arn)

    @property
    def stream_arn(self) -> str:
        if self.is_sharded:
            return self.source_kinesis_stream_arn
        return self.delivery_stream_arn

    @property
    def stream_name(self) -> str:
        return self.stream_arn.rsplit("/", 1)[-1]

    @property
    def stream_region(self) -> str:
        if self.region:
            return self.region
        # arn:aws:firehose:<region>:<account>:deliverystream/<name>
        parts = self.stream_arn.split(":")
        return parts[3] if len(parts) > 3 else ""

    def records_by_id(self) -> dict[str, InputRecord]:
        return {record.record_id: record for record in self.records}

    @classmethod
    def from_event(cls, event) -> "InvocationBatch":
        if not isinstance(event, dict):
            raise InvalidEventError(f"event must be an object, got {type(event).__name__}")
        raw_records = _field(event, "records")
        if not isinstance(raw_records, list):
            raise InvalidEventError("event.records must be a list")

        source_arn = str(_field(event, "sourceKinesisStreamArn") or "")
        return cls(
            invocation_id=str(_field(event, "invocationId") or ""),
            delivery_stream_arn=str(_field(event, "deliveryStreamArn") or ""),
            source_kinesis_stream_arn=source_arn,
            region=str(_field(event, "region") or ""),
            records=[InputRecord.from_dict(r, bool(source_arn)) for r in raw_records],
        )


@dataclass
class OutputRecord:
    record_id: str
    result: str
    data: str | None = None
    partition_key: str | None = None

    def to_dict(self) -> dict:
        out = {"recordId": self.record_id, "result": self.result}
        if self.result == RESULT_OK and self.data:
            out["data"] = self.data
        if self.partition_key is not None:
            out["partitionKey"] = self.partition_key
        return out


def projected_size(records: list[OutputRecord]) -> int:
    """Estimate the response size in bytes, counting only records that carry data.

    JSON framing is ignored; the ceiling it is compared against leaves room for it.
    """
    total = 0
    for record in records:
        if record.result == RESULT_OK:
            total += len(record.record_id) + len(record.data or "")
    return total


def build_response(records: list[OutputRecord]) -> dict:
    return {"records": [record.to_dict() for record in records]}
