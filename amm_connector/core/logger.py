# /amm_connector/core/logger.py
import logging
import structlog
import sentry_sdk
from prometheus_client import Counter

from amm_connector.core.config import settings

# --- Prometheus Metrics ---
TRADES_SUBMITTED = Counter("amm_connector_trades_submitted_total", "Swap transactions accepted by the node", ["connector", "trade_type"])
NONCES_COMMITTED = Counter("amm_connector_nonces_committed_total", "Nonces committed after node acceptance", ["chain_id"])
SUBMISSION_FAILURES = Counter("amm_connector_submission_failures_total", "Signing or sending failures", ["chain_id"])
GAS_PRICE_REFRESH_FAILURES = Counter("amm_connector_gas_price_refresh_failures_total", "Gas price refreshes that kept the previous value", ["owner"])
CANCELLATIONS_SENT = Counter("amm_connector_cancellations_sent_total", "Self-transfer cancellations sent", ["chain_id"])


def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)


configure_logging()
log = get_logger("amm_connector")
