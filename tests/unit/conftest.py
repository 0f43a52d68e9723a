import base64
import gzip
import json

import pytest

DELIVERY_STREAM_ARN = "arn:aws:firehose:us-east-1:1234567890:deliverystream/DataLog"
SOURCE_STREAM_ARN = "arn:aws:kinesis:us-east-1:1234567890:stream/SourceLog"


def _envelope(message_type="DATA_MESSAGE", messages=("test",)):
    return {
        "messageType": message_type,
        "owner": "1234567890",
        "logGroup": "/aws/lambda/app",
        "logStream": "2026/01/01/[$LATEST]abc",
        "subscriptionFilters": ["to-firehose"],
        "logEvents": [
            {"id": str(idx), "timestamp": 1621224132233 + idx, "message": message}
            for idx, message in enumerate(messages)
        ],
    }


def _encode(payload):
    if not isinstance(payload, bytes):
        payload = json.dumps(payload).encode("utf-8")
    return base64.b64encode(gzip.compress(payload)).decode("utf-8")


@pytest.fixture
def make_envelope():
    return _envelope


@pytest.fixture
def encode_payload():
    """gzip + base64 a dict (as JSON) or raw bytes, the way CloudWatch Logs delivers it."""
    return _encode


@pytest.fixture
def make_event():
    def factory(datas, sharded=False, partition_key="pk-1", region="us-east-1"):
        records = []
        for idx, data in enumerate(datas):
            record = {
                "recordId": f"record-{idx}",
                "approximateArrivalTimestamp": 1621224132233,
                "data": data,
            }
            if sharded:
                record["kinesisRecordMetadata"] = {"partitionKey": f"{partition_key}-{idx}"}
            records.append(record)
        event = {
            "invocationId": "invocation-1",
            "deliveryStreamArn": DELIVERY_STREAM_ARN,
            "region": region,
            "records": records,
        }
        if sharded:
            event["sourceKinesisStreamArn"] = SOURCE_STREAM_ARN
        return event

    return factory
