import logging
import os

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)


def _sample_rate(env_var: str) -> float:
    raw_value = os.getenv(env_var)
    if raw_value is None:
        return 0.0
    try:
        value = float(raw_value)
    except ValueError:
        logger.warning("%s is not a valid float (got %r); using 0", env_var, raw_value)
        return 0.0
    if not 0.0 <= value <= 1.0:
        logger.warning("%s must be between 0 and 1; using 0", env_var)
        return 0.0
    return value


def init_sentry() -> bool:
    """Initialise error reporting from ``SENTRY_*`` variables.

    Returns ``False`` when no DSN is configured. Error-level log records,
    such as a queued operation dropped after its last retry, become Sentry
    events.
    """

    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        logger.info("SENTRY_DSN not provided; skipping Sentry initialization.")
        return False

    environment = (os.getenv("SENTRY_ENVIRONMENT") or "").strip() or None
    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        environment=environment,
        traces_sample_rate=_sample_rate("SENTRY_TRACES_SAMPLE_RATE"),
        profiles_sample_rate=_sample_rate("SENTRY_PROFILES_SAMPLE_RATE"),
    )
    logger.info(
        "Initialized Sentry%s",
        f" (environment={environment})" if environment else "",
    )
    return True
