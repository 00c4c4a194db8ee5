"""Retry-with-backoff wrapper for store and channel calls.

Only `TransientInfrastructureError` is retried; business-rule failures pass
straight through on the first attempt.
"""

import inspect
from dataclasses import dataclass

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from orderpay.common.config import settings
from orderpay.common.errors import TransientInfrastructureError
from orderpay.common.logging import logger
from orderpay.common.metrics import retries_total


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 1.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(max_attempts=settings.retry_max_attempts, backoff_seconds=settings.retry_backoff_seconds)


async def call_with_retry(policy: RetryPolicy, operation, *args, dependency: str = "store", **kwargs):
    """Run `operation` (sync or async) under `policy`.

    The last `TransientInfrastructureError` is re-raised once attempts are
    exhausted.
    """

    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retries_total.labels(service=settings.service_name, dependency=dependency).inc()
        logger.warning(
            "transient failure dependency=%s attempt=%s/%s backoff_s=%s error=%s",
            dependency,
            retry_state.attempt_number,
            policy.max_attempts,
            policy.backoff_seconds,
            exc,
        )

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_fixed(policy.backoff_seconds),
        retry=retry_if_exception_type(TransientInfrastructureError),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            result = operation(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
    return result
