"""Bounded retry with exponential backoff for outbound calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

import httpx

from briefcast.errors import NonRetryableError, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR_MIN = 500


def status_code_of(error: BaseException) -> int | None:
    """Best-effort HTTP status extraction from SDK and httpx errors."""

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attribute in ("status_code", "status"):
        value = getattr(error, attribute, None)
        if isinstance(value, int):
            return value
    return None


def is_retryable_status(status_code: int) -> bool:
    return status_code == HTTP_TOO_MANY_REQUESTS or status_code >= HTTP_SERVER_ERROR_MIN


def default_is_retryable(error: BaseException) -> bool:
    """Retry transport failures, 429 and 5xx; never explicit non-retryables."""

    if isinstance(error, NonRetryableError):
        return False
    if isinstance(error, RetryableError) and error.status_code is None:
        return True
    if isinstance(error, httpx.TransportError):
        return True
    status_code = status_code_of(error)
    if status_code is None:
        return True
    return is_retryable_status(status_code)


def with_retry(  # noqa: PLR0913
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    delay_seconds: float = 1.0,
    label: str = "operation",
    is_retryable: Callable[[BaseException], bool] = default_is_retryable,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``attempts`` times, doubling the delay after each failure.

    The last error (or the first non-retryable one) is re-raised unchanged so
    callers can still distinguish failure kinds.
    """

    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(attempts):
        try:
            return fn()
        except Exception as error:
            is_last = attempt == attempts - 1
            if is_last or not is_retryable(error):
                raise
            wait = delay_seconds * (2**attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                label,
                attempt + 1,
                attempts,
                error,
                wait,
            )
            sleep(wait)
    raise RuntimeError(f"{label} failed after {attempts} attempts")  # pragma: no cover
