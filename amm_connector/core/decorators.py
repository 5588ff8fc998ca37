# /amm_connector/core/decorators.py
# Retry policy for collaborator I/O (token lists). Swap submission and reserve
# reads are never retried here.
import logging

from tenacity import retry, stop_after_attempt, wait_exponential, before_sleep_log

# tenacity's before_sleep_log calls logger.log(level, msg), which structlog's
# filtering bound logger does not implement, so hand it a stdlib logger.
_stdlib_log = logging.getLogger("amm_connector.retry")

retriable_network_call = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    before_sleep=before_sleep_log(_stdlib_log, logging.WARNING),
    reraise=True  # Re-raise the last exception after retries are exhausted
)
