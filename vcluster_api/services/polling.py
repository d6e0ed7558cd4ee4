from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from vcluster_api.services.errors import ReadinessTimeoutException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotReadyError(Exception):
    """Raised by a poll query when the awaited resource is not there yet."""


def max_attempts_for(*, interval: float, timeout: float) -> int:
    """Number of queries that fit in ``timeout``: one up front, then one per tick."""
    if interval <= 0:
        raise ValueError("poll interval must be positive")
    if timeout < 0:
        raise ValueError("poll timeout must not be negative")
    return int(timeout // interval) + 1


def poll_until(
    query: Callable[[], T],
    *,
    ready: Callable[[T], bool] = bool,
    interval: float,
    timeout: float,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``query`` every ``interval`` seconds until ``ready`` accepts its result.

    A query raising :class:`NotReadyError` counts as a miss, as does a result
    rejected by ``ready``. Any other exception propagates immediately. Once
    ``timeout`` is spent a :class:`ReadinessTimeoutException` is raised.
    """
    max_attempts = max_attempts_for(interval=interval, timeout=timeout)

    def _log_miss(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        reason = "not ready"
        if outcome is not None and outcome.failed:
            reason = str(outcome.exception())
        logger.debug(
            "%s not ready yet (attempt %s/%s): %s; retrying in %ss",
            description,
            retry_state.attempt_number,
            max_attempts,
            reason,
            interval,
        )

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts) | stop_after_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(NotReadyError) | retry_if_result(lambda value: not ready(value)),
        before_sleep=_log_miss,
        sleep=sleep,
    )
    try:
        return retrying(query)
    except RetryError as exc:
        attempts = exc.last_attempt.attempt_number
        logger.warning("Timed out waiting for %s after %s attempts", description, attempts)
        raise ReadinessTimeoutException(
            f"Timed out waiting for {description} after {attempts} attempts ({timeout}s)",
            attempts=attempts,
            timeout=timeout,
        ) from exc
