import logging

from . import config
from .overflow import split_overflow
from .records import InvocationBatch, build_response, projected_size
from .reingest import build_writer, put_batches
from .transform import transform_records

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


def _deadline_check(context):
    remaining = getattr(context, "get_remaining_time_in_millis", None)
    if not callable(remaining):
        return None
    return lambda: remaining() < config.MIN_REMAINING_TIME_MS


def handler(event, context):
    try:
        batch = InvocationBatch.from_event(event)
        results = transform_records(batch)

        if not config.REINGEST_ENABLED:
            size = projected_size(results)
            if size > config.PROJECTED_SIZE_LIMIT:
                logger.error(
                    "reingestion disabled and projected size %d is over the limit (%d); "
                    "the response will likely be rejected as too large",
                    size,
                    config.PROJECTED_SIZE_LIMIT,
                )
            return build_response(results)

        plan = split_overflow(
            batch,
            results,
            limit=config.PROJECTED_SIZE_LIMIT,
            max_batch_records=config.MAX_REINGEST_BATCH_RECORDS,
            max_batch_bytes=config.MAX_REINGEST_BATCH_BYTES,
        )
        if plan.batches:
            writer = build_writer(batch, cancelled=_deadline_check(context))
            put_batches(writer, plan.batches, plan.total_records, len(batch.records))
        else:
            logger.info("No records needed to be reingested.")
    except Exception:
        logger.exception("invocation failed")
        raise

    return build_response(results)
