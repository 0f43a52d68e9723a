#!/usr/bin/env python3
import argparse
import base64
import gzip
import json
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_DELIVERY_STREAM_ARN = "arn:aws:firehose:us-east-1:123456789012:deliverystream/DataLog"
DEFAULT_REGION = "us-east-1"

# scenario -> expected result of every record in the event
SCENARIOS: Dict[str, str] = {
    "data": "Ok",
    "control": "Dropped",
    "empty": "Dropped",
    "unknown": "ProcessingFailed",
    "corrupt": "ProcessingFailed",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def slugify(value: str, max_len: int = 80) -> str:
    safe = []
    for ch in value:
        if ch.isalnum() or ch in ("-", "_", "."):
            safe.append(ch)
        else:
            safe.append("_")
    return "".join(safe)[:max_len]


def build_envelope(scenario: str, messages: List[str], log_group: str, log_stream: str) -> Dict[str, Any]:
    now_ms = int(time.time() * 1000)
    message_type = {"control": "CONTROL_MESSAGE", "unknown": "UNKNOWN_MESSAGE"}.get(scenario, "DATA_MESSAGE")
    if scenario == "empty":
        messages = [""]
    events = [
        {"id": str(uuid.uuid4().int)[:56], "timestamp": now_ms + idx, "message": message}
        for idx, message in enumerate(messages)
    ]
    return {
        "messageType": message_type,
        "owner": "123456789012",
        "logGroup": log_group,
        "logStream": log_stream,
        "subscriptionFilters": ["local-invoke"],
        "logEvents": events,
    }


def encode_envelope(envelope: Dict[str, Any], corrupt: bool = False) -> str:
    raw = gzip.compress(json.dumps(envelope, separators=(",", ":")).encode("utf-8"))
    if corrupt:
        # drop the gzip trailer so inflation fails
        raw = raw[:-8]
    return base64.b64encode(raw).decode("utf-8")


@dataclass(frozen=True)
class PreparedEvent:
    event: Dict[str, Any]
    expected: str


def prepare_event(
    *,
    scenario: str,
    messages: List[str],
    record_count: int,
    invocation_id: str,
    delivery_stream_arn: str,
    source_stream_arn: Optional[str],
    region: str,
    partition_key: str,
    log_group: str,
    log_stream: str,
) -> PreparedEvent:
    if scenario not in SCENARIOS:
        raise ValueError(f"unknown scenario: {scenario}")
    if record_count < 1:
        raise ValueError("--records must be >= 1")

    now_ms = int(time.time() * 1000)
    records = []
    for idx in range(record_count):
        envelope = build_envelope(scenario, messages, log_group, log_stream)
        record: Dict[str, Any] = {
            "recordId": f"{idx + 1:056d}",
            "approximateArrivalTimestamp": now_ms,
            "data": encode_envelope(envelope, corrupt=scenario == "corrupt"),
        }
        if source_stream_arn:
            record["kinesisRecordMetadata"] = {
                "partitionKey": partition_key,
                "shardId": "shardId-000000000000",
                "approximateArrivalTimestamp": now_ms,
            }
        records.append(record)

    event: Dict[str, Any] = {
        "invocationId": invocation_id,
        "deliveryStreamArn": delivery_stream_arn,
        "region": region,
        "records": records,
    }
    if source_stream_arn:
        event["sourceKinesisStreamArn"] = source_stream_arn
    return PreparedEvent(event=event, expected=SCENARIOS[scenario])


def check_expected(expected: str, response: Dict[str, Any]) -> Tuple[bool, List[str]]:
    results = [str(r.get("result")) for r in response.get("records", [])]
    return all(r == expected for r in results), results


def write_evidence(*, evidence_dir: Path, run_id: str, event: Dict[str, Any], response: Dict[str, Any]) -> None:
    evidence_dir.mkdir(parents=True, exist_ok=True)
    for suffix, doc in (("event", event), ("response", response)):
        path = evidence_dir / f"{run_id}.{suffix}.json"
        path.write_text(json.dumps(doc, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def main(argv: List[str]) -> int:
    parser = argparse.ArgumentParser(description="Run the CloudWatch Logs transformation handler on a sample event.")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="data")
    parser.add_argument(
        "--message",
        action="append",
        dest="messages",
        help="log event message (repeatable, default: a single 'test' line)",
    )
    parser.add_argument("--records", type=int, default=1, help="number of records in the event")
    parser.add_argument("--invocation-id", help="default: random uuid")
    parser.add_argument("--delivery-stream-arn", default=DEFAULT_DELIVERY_STREAM_ARN)
    parser.add_argument("--source-stream-arn", help="Kinesis source stream ARN (selects the PutRecords path)")
    parser.add_argument("--partition-key", default="local-invoke")
    parser.add_argument("--region", default=DEFAULT_REGION)
    parser.add_argument("--log-group", default="/aws/lambda/local-invoke")
    parser.add_argument("--log-stream", default="2026/01/01/[$LATEST]local")
    parser.add_argument("--dry-run", action="store_true", help="print the event without invoking the handler")
    parser.add_argument("--evidence-dir", help="write event/response JSON files to this directory")

    args = parser.parse_args(argv)

    invocation_id = args.invocation_id or str(uuid.uuid4())
    prepared = prepare_event(
        scenario=args.scenario,
        messages=args.messages or ["test"],
        record_count=args.records,
        invocation_id=invocation_id,
        delivery_stream_arn=args.delivery_stream_arn,
        source_stream_arn=args.source_stream_arn,
        region=args.region,
        partition_key=args.partition_key,
        log_group=args.log_group,
        log_stream=args.log_stream,
    )

    if args.dry_run:
        print(json.dumps(prepared.event, ensure_ascii=False, indent=2))
        return 0

    from .handler import handler

    started = time.perf_counter()
    response = handler(prepared.event, None)
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    ok, results = check_expected(prepared.expected, response)

    print(json.dumps(response, ensure_ascii=False, indent=2))
    print(
        f"scenario={args.scenario} expected={prepared.expected} results={','.join(results)} "
        f"elapsed_ms={elapsed_ms} at={utc_now_iso()}",
        file=sys.stderr,
    )
    if args.evidence_dir:
        run_id = f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}_{args.scenario}_{slugify(invocation_id)}"
        write_evidence(
            evidence_dir=Path(args.evidence_dir).resolve(),
            run_id=run_id,
            event=prepared.event,
            response=response,
        )

    return 0 if ok else 2


def run() -> None:
    try:
        raise SystemExit(main(sys.argv[1:]))
    except Exception as e:
        print(f"[error] {e}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    run()
