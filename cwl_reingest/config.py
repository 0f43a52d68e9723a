import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "y", "on")


LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# 6000000 instead of 6291456 to leave headroom for the response framing.
PROJECTED_SIZE_LIMIT = _env_int("PROJECTED_SIZE_LIMIT", 6000000)

# PutRecords / PutRecordBatch accept at most 500 entries per call.
MAX_REINGEST_BATCH_RECORDS = min(500, max(1, _env_int("MAX_REINGEST_BATCH_RECORDS", 500)))

# PutRecordBatch rejects requests over 4 MiB (PutRecords: 5 MiB); keep each group under this.
MAX_REINGEST_BATCH_BYTES = max(1, _env_int("MAX_REINGEST_BATCH_BYTES", 4000000))

MAX_PUT_ATTEMPTS = max(1, _env_int("MAX_PUT_ATTEMPTS", 20))
RETRY_BASE_DELAY_SEC = max(0.0, _env_float("RETRY_BASE_DELAY_SEC", 0.1))
RETRY_MAX_DELAY_SEC = max(0.0, _env_float("RETRY_MAX_DELAY_SEC", 2.0))
MIN_REMAINING_TIME_MS = max(0, _env_int("MIN_REMAINING_TIME_MS", 1000))

# With reingestion off, an over-limit batch is returned as is and the delivery
# stream fails the invocation for exceeding the response size limit.
REINGEST_ENABLED = _env_bool("REINGEST_ENABLED", True)
