from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from cwl_reingest.records import InvalidEventError, InvocationBatch, ReingestRecord
from cwl_reingest.reingest import (
    FirehoseStreamWriter,
    KinesisStreamWriter,
    ReingestCancelled,
    ReingestError,
    build_writer,
    put_batches,
)


def _firehose_ok(count):
    return {"FailedPutCount": 0, "RequestResponses": [{"RecordId": str(i)} for i in range(count)]}


def _client_error(operation):
    return ClientError({"Error": {"Code": "ServiceUnavailableException", "Message": "slow down"}}, operation)


class TestFirehoseStreamWriter:

    def test_single_attempt(self):
        client = MagicMock()
        client.put_record_batch.return_value = _firehose_ok(2)
        writer = FirehoseStreamWriter(client, "DataLog", retry_base_delay=0)

        attempts = writer.put_records([ReingestRecord(b"one"), ReingestRecord(b"two")])

        assert attempts == 1
        client.put_record_batch.assert_called_once_with(
            DeliveryStreamName="DataLog",
            Records=[{"Data": b"one"}, {"Data": b"two"}],
        )

    def test_retries_only_failed_entries(self):
        client = MagicMock()
        client.put_record_batch.side_effect = [
            {
                "FailedPutCount": 1,
                "RequestResponses": [
                    {"RecordId": "a"},
                    {"ErrorCode": "ServiceUnavailableException", "ErrorMessage": "busy"},
                    {"RecordId": "c"},
                ],
            },
            _firehose_ok(1),
        ]
        writer = FirehoseStreamWriter(client, "DataLog", retry_base_delay=0)

        attempts = writer.put_records([ReingestRecord(b"one"), ReingestRecord(b"two"), ReingestRecord(b"three")])

        assert attempts == 2
        assert client.put_record_batch.call_args_list[1].kwargs["Records"] == [{"Data": b"two"}]

    def test_whole_call_failure_retries_everything(self):
        client = MagicMock()
        client.put_record_batch.side_effect = [_client_error("PutRecordBatch"), _firehose_ok(2)]
        writer = FirehoseStreamWriter(client, "DataLog", retry_base_delay=0)

        assert writer.put_records([ReingestRecord(b"one"), ReingestRecord(b"two")]) == 2
        assert len(client.put_record_batch.call_args_list[1].kwargs["Records"]) == 2

    def test_failures_without_codes_retry_everything(self):
        client = MagicMock()
        client.put_record_batch.side_effect = [
            {"FailedPutCount": 1, "RequestResponses": []},
            _firehose_ok(1),
        ]
        writer = FirehoseStreamWriter(client, "DataLog", retry_base_delay=0)

        assert writer.put_records([ReingestRecord(b"one")]) == 2

    def test_gives_up_after_max_attempts(self):
        client = MagicMock()
        client.put_record_batch.side_effect = EndpointConnectionError(endpoint_url="https://firehose")
        writer = FirehoseStreamWriter(client, "DataLog", retry_base_delay=0)

        with pytest.raises(ReingestError) as exc_info:
            writer.put_records([ReingestRecord(b"one")])

        assert client.put_record_batch.call_count == 20
        assert "after 20 attempts" in str(exc_info.value)
        assert "https://firehose" in str(exc_info.value)

    def test_empty_batch_is_a_no_op(self):
        client = MagicMock()
        writer = FirehoseStreamWriter(client, "DataLog")
        assert writer.put_records([]) == 0
        client.put_record_batch.assert_not_called()

    def test_backoff_is_exponential_and_capped(self):
        writer = FirehoseStreamWriter(MagicMock(), "DataLog", retry_base_delay=0.1, retry_max_delay=1.0)
        assert [writer._backoff(n) for n in (1, 2, 3, 4, 5, 6)] == pytest.approx([0.1, 0.2, 0.4, 0.8, 1.0, 1.0])

    @patch("cwl_reingest.reingest.time.sleep")
    def test_sleeps_between_attempts(self, sleep):
        client = MagicMock()
        client.put_record_batch.side_effect = [_client_error("PutRecordBatch"), _client_error("PutRecordBatch"), _firehose_ok(1)]
        writer = FirehoseStreamWriter(client, "DataLog", retry_base_delay=0.5, retry_max_delay=5)

        writer.put_records([ReingestRecord(b"one")])

        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]


class TestKinesisStreamWriter:

    def test_partition_keys_are_sent_and_kept_on_retry(self):
        client = MagicMock()
        client.put_records.side_effect = [
            {
                "FailedRecordCount": 1,
                "Records": [
                    {"ErrorCode": "ProvisionedThroughputExceededException", "ErrorMessage": "slow down"},
                    {"SequenceNumber": "1", "ShardId": "shardId-000000000000"},
                ],
            },
            {"FailedRecordCount": 0, "Records": [{"SequenceNumber": "2", "ShardId": "shardId-000000000000"}]},
        ]
        writer = KinesisStreamWriter(client, "SourceLog", retry_base_delay=0)

        writer.put_records([ReingestRecord(b"one", "pk-a"), ReingestRecord(b"two", "pk-b")])

        first, second = client.put_records.call_args_list
        assert first.kwargs == {
            "StreamName": "SourceLog",
            "Records": [{"Data": b"one", "PartitionKey": "pk-a"}, {"Data": b"two", "PartitionKey": "pk-b"}],
        }
        assert second.kwargs["Records"] == [{"Data": b"one", "PartitionKey": "pk-a"}]


class TestCancellation:

    def test_cancelled_before_first_attempt(self):
        client = MagicMock()
        writer = FirehoseStreamWriter(client, "DataLog", cancelled=lambda: True)

        with pytest.raises(ReingestCancelled):
            writer.put_records([ReingestRecord(b"one")])
        client.put_record_batch.assert_not_called()

    def test_cancelled_between_retries(self):
        client = MagicMock()
        client.put_record_batch.side_effect = _client_error("PutRecordBatch")
        cancelled = MagicMock(side_effect=[False, True])
        writer = FirehoseStreamWriter(client, "DataLog", retry_base_delay=0, cancelled=cancelled)

        with pytest.raises(ReingestCancelled):
            writer.put_records([ReingestRecord(b"one")])
        assert client.put_record_batch.call_count == 1


class TestBuildWriter:

    @patch("cwl_reingest.reingest.boto3.client")
    def test_delivery_stream_origin(self, boto_client, make_event):
        writer = build_writer(InvocationBatch.from_event(make_event([], region="eu-west-1")))
        assert isinstance(writer, FirehoseStreamWriter)
        assert writer.stream_name == "DataLog"
        boto_client.assert_called_once_with("firehose", region_name="eu-west-1")

    @patch("cwl_reingest.reingest.boto3.client")
    def test_sharded_origin(self, boto_client, make_event):
        writer = build_writer(InvocationBatch.from_event(make_event([], sharded=True)))
        assert isinstance(writer, KinesisStreamWriter)
        assert writer.stream_name == "SourceLog"
        boto_client.assert_called_once_with("kinesis", region_name="us-east-1")

    def test_missing_stream_arn(self):
        with pytest.raises(InvalidEventError):
            build_writer(InvocationBatch.from_event({"records": []}))


class TestPutBatches:

    def test_progress_and_summary(self, caplog):
        writer = MagicMock(stream_name="DataLog")
        batches = [[ReingestRecord(b"a")] * 500, [ReingestRecord(b"b")] * 20]

        with caplog.at_level("INFO", logger="cwl_reingest.reingest"):
            assert put_batches(writer, batches, 520, 600) == 520

        assert writer.put_records.call_count == 2
        assert "Reingested 500/520 records out of 600 in to DataLog stream" in caplog.text
        assert "Reingested 520/520 records out of 600 in to DataLog stream" in caplog.text
        assert "Reingested all 520 records out of 600 in to DataLog stream" in caplog.text

    def test_failure_stops_remaining_batches(self, caplog):
        writer = MagicMock(stream_name="DataLog")
        writer.put_records.side_effect = ReingestError("Could not put records after 20 attempts.")

        with pytest.raises(ReingestError):
            put_batches(writer, [[ReingestRecord(b"a")], [ReingestRecord(b"b")]], 2, 2)

        assert writer.put_records.call_count == 1
        assert "Reingested all" not in caplog.text
