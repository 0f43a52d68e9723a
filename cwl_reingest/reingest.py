from __future__ import annotations

import logging
import time
from typing import Callable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import config
from .records import InvalidEventError, InvocationBatch, ReingestRecord

logger = logging.getLogger(__name__)


class ReingestError(RuntimeError):
    """Records could not be put back on the origin stream."""


class ReingestCancelled(ReingestError):
    pass


class StreamWriter:
    """Puts reingest records on a stream, retrying only the entries that failed.

    Subclasses implement ``_put`` for one destination API and report
    ``(failed_count, error_code_per_entry)`` in request order.
    """

    api_name = ""

    def __init__(
        self,
        client,
        stream_name: str,
        max_attempts: int = config.MAX_PUT_ATTEMPTS,
        retry_base_delay: float = config.RETRY_BASE_DELAY_SEC,
        retry_max_delay: float = config.RETRY_MAX_DELAY_SEC,
        cancelled: Callable[[], bool] | None = None,
    ):
        self.client = client
        self.stream_name = stream_name
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.cancelled = cancelled

    def _put(self, records: list[ReingestRecord]) -> tuple[int, list[str | None]]:
        raise NotImplementedError

    def _check_cancelled(self, attempt: int) -> None:
        if self.cancelled is not None and self.cancelled():
            raise ReingestCancelled(
                f"Reingestion into {self.stream_name} cancelled after {attempt} attempts"
            )

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_max_delay, self.retry_base_delay * (2 ** (attempt - 1)))

    def _submit(self, pending: list[ReingestRecord]) -> tuple[list[ReingestRecord], str]:
        try:
            failed_count, codes = self._put(pending)
        except (ClientError, BotoCoreError) as exc:
            return pending, str(exc)
        if not failed_count:
            return [], ""

        failed = [record for record, code in zip(pending, codes) if code]
        if not failed:
            return pending, f"{failed_count} records failed without individual error codes"
        return failed, "Individual error codes: " + ",".join(code for code in codes if code)

    def put_records(self, records: list[ReingestRecord]) -> int:
        """Put ``records`` and return the number of attempts it took."""
        pending = list(records)
        if not pending:
            return 0

        attempt = 0
        while True:
            self._check_cancelled(attempt)
            attempt += 1
            pending, error = self._submit(pending)
            if not pending:
                return attempt
            if attempt >= self.max_attempts:
                raise ReingestError(f"Could not put records after {attempt} attempts. {error}")

            logger.warning(
                "%d records failed while calling %s, retrying. %s",
                len(pending),
                self.api_name,
                error,
            )
            self._check_cancelled(attempt)
            time.sleep(self._backoff(attempt))


class KinesisStreamWriter(StreamWriter):
    api_name = "PutRecords"

    def _put(self, records):
        resp = self.client.put_records(
            StreamName=self.stream_name,
            Records=[{"Data": r.data, "PartitionKey": r.partition_key} for r in records],
        )
        entries = resp.get("Records") or []
        return resp.get("FailedRecordCount", 0), [e.get("ErrorCode") for e in entries]


class FirehoseStreamWriter(StreamWriter):
    api_name = "PutRecordBatch"

    def _put(self, records):
        resp = self.client.put_record_batch(
            DeliveryStreamName=self.stream_name,
            Records=[{"Data": r.data} for r in records],
        )
        entries = resp.get("RequestResponses") or []
        return resp.get("FailedPutCount", 0), [e.get("ErrorCode") for e in entries]


def build_writer(batch: InvocationBatch, cancelled: Callable[[], bool] | None = None) -> StreamWriter:
    if not batch.stream_name:
        raise InvalidEventError("cannot reingest: event has no deliveryStreamArn or sourceKinesisStreamArn")
    region = batch.stream_region or None
    settings = {
        "max_attempts": config.MAX_PUT_ATTEMPTS,
        "retry_base_delay": config.RETRY_BASE_DELAY_SEC,
        "retry_max_delay": config.RETRY_MAX_DELAY_SEC,
        "cancelled": cancelled,
    }
    if batch.is_sharded:
        client = boto3.client("kinesis", region_name=region)
        return KinesisStreamWriter(client, batch.stream_name, **settings)
    client = boto3.client("firehose", region_name=region)
    return FirehoseStreamWriter(client, batch.stream_name, **settings)


def put_batches(
    writer: StreamWriter,
    batches: list[list[ReingestRecord]],
    total_records: int,
    received_records: int,
) -> int:
    reingested = 0
    for records in batches:
        try:
            writer.put_records(records)
        except ReingestError:
            logger.error("Failed to reingest records.")
            raise
        reingested += len(records)
        logger.info(
            "Reingested %d/%d records out of %d in to %s stream",
            reingested,
            total_records,
            received_records,
            writer.stream_name,
        )

    logger.info(
        "Reingested all %d records out of %d in to %s stream",
        total_records,
        received_records,
        writer.stream_name,
    )
    return reingested
