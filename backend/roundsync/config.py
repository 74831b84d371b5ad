import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


def _parse_float(env_var: str, default: float) -> float:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = float(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid float (got %r); defaulting to %.2f",
            env_var,
            raw_value,
            default,
        )
        return default

    if value < 0:
        logger.warning("%s cannot be negative; defaulting to %.2f", env_var, default)
        return default

    return value


def _parse_int(env_var: str, default: int, *, minimum: int = 0) -> int:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = int(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid integer (got %r); defaulting to %d",
            env_var,
            raw_value,
            default,
        )
        return default

    if value < minimum:
        logger.warning(
            "%s must be >= %d; defaulting to %d", env_var, minimum, default
        )
        return default

    return value


def _parse_delays(env_var: str, default: tuple[float, ...]) -> tuple[float, ...]:
    raw_value = (os.getenv(env_var) or "").strip()
    if not raw_value:
        return default

    try:
        delays = tuple(float(part) for part in raw_value.split(",") if part.strip())
    except ValueError:
        logger.warning(
            "%s must be a comma-separated list of seconds (got %r); using defaults",
            env_var,
            raw_value,
        )
        return default

    if not delays or any(delay < 0 for delay in delays):
        logger.warning("%s must contain non-negative delays; using defaults", env_var)
        return default

    return delays


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

LOCAL_EDIT_CACHE_MAX_ENTRIES = _parse_int(
    "LOCAL_EDIT_CACHE_MAX_ENTRIES", 50, minimum=1
)
SAVED_INDICATOR_SECONDS = _parse_float("SAVED_INDICATOR_SECONDS", 2.0)

# Locked score writes: lock conflicts are common, so retry more and sooner.
SCORE_RETRY_MAX_ATTEMPTS = _parse_int("SCORE_RETRY_MAX_ATTEMPTS", 6, minimum=1)
SCORE_RETRY_BASE_DELAY = _parse_float("SCORE_RETRY_BASE_DELAY", 0.5)
SCORE_RETRY_MAX_DELAY = _parse_float("SCORE_RETRY_MAX_DELAY", 5.0)
SCORE_RETRY_MULTIPLIER = _parse_float("SCORE_RETRY_MULTIPLIER", 1.5)

# Bulk round-list writes.
DB_RETRY_MAX_ATTEMPTS = _parse_int("DB_RETRY_MAX_ATTEMPTS", 4, minimum=1)
DB_RETRY_BASE_DELAY = _parse_float("DB_RETRY_BASE_DELAY", 1.0)
DB_RETRY_MAX_DELAY = _parse_float("DB_RETRY_MAX_DELAY", 8.0)
DB_RETRY_MULTIPLIER = _parse_float("DB_RETRY_MULTIPLIER", 2.0)

SYNC_MAX_RETRIES = _parse_int("SYNC_MAX_RETRIES", 5, minimum=1)
SYNC_RETRY_DELAYS = _parse_delays("SYNC_RETRY_DELAYS", (0.0, 2.0, 4.0, 8.0, 16.0))
SYNC_RECONNECT_DELAY_SECONDS = _parse_float("SYNC_RECONNECT_DELAY_SECONDS", 1.0)

LOCK_TIMEOUT_SECONDS = _parse_float("LOCK_TIMEOUT_SECONDS", 5.0)

HTTP_TIMEOUT_SECONDS = _parse_float("HTTP_TIMEOUT_SECONDS", 10.0)

SCORE_RATE_LIMIT = os.getenv("SCORE_RATE_LIMIT", "120/minute")
EVENT_RATE_LIMIT = os.getenv("EVENT_RATE_LIMIT", "60/minute")
