from __future__ import annotations

import logging
from dataclasses import dataclass, field

from . import codec, config
from .records import (
    RESULT_DROPPED,
    RESULT_OK,
    InvocationBatch,
    OutputRecord,
    ReingestRecord,
    projected_size,
)

logger = logging.getLogger(__name__)


class InputLookupError(RuntimeError):
    """A transformed record could not be matched back to its original input."""


@dataclass
class OverflowPlan:
    batches: list[list[ReingestRecord]] = field(default_factory=list)
    total_records: int = 0
    projected_size: int = 0


def split_overflow(
    batch: InvocationBatch,
    results: list[OutputRecord],
    limit: int = config.PROJECTED_SIZE_LIMIT,
    max_batch_records: int = config.MAX_REINGEST_BATCH_RECORDS,
    max_batch_bytes: int = config.MAX_REINGEST_BATCH_BYTES,
) -> OverflowPlan:
    """Move ``Ok`` records out of the response until it fits under ``limit``.

    Records are taken in their original order. Each one taken is flipped to
    ``Dropped`` in ``results`` (in place) and its original input is queued for
    reingestion, grouped into batches of at most ``max_batch_records`` records and
    ``max_batch_bytes`` of payload (a single larger record goes alone). The scan
    stops as soon as the projected size is back under the limit; later records
    keep their transformed data even when they are large.
    """
    size = projected_size(results)
    plan = OverflowPlan(projected_size=size)
    if size <= limit:
        return plan

    inputs = batch.records_by_id()
    current: list[ReingestRecord] = []
    current_bytes = 0

    for result in results:
        if size <= limit:
            break
        if result.result != RESULT_OK:
            continue

        original = inputs.get(result.record_id)
        if original is None:
            raise InputLookupError(f"no input record for recordId {result.record_id}")
        try:
            reingest = original.reingest_record(batch.is_sharded)
        except codec.DecodeError as exc:
            raise InputLookupError(f"could not decode input for recordId {result.record_id}: {exc}") from exc

        if current and current_bytes + len(reingest.data) > max_batch_bytes:
            plan.batches.append(current)
            current = []
            current_bytes = 0
        current.append(reingest)
        current_bytes += len(reingest.data)

        size -= len(result.record_id) + len(result.data or "")
        result.result = RESULT_DROPPED
        result.data = None
        plan.total_records += 1

        if len(current) >= max_batch_records:
            plan.batches.append(current)
            current = []
            current_bytes = 0

    if current:
        plan.batches.append(current)

    plan.projected_size = size
    logger.info(
        "projected size over limit (%d), %d records queued for reingestion in %d batches, new size %d",
        limit,
        plan.total_records,
        len(plan.batches),
        size,
    )
    return plan
