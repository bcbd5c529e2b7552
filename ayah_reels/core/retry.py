from __future__ import annotations

import errno
import logging
import time
from typing import Callable, TypeVar

import requests

from ayah_reels.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCK_ERRNOS = {errno.EBUSY, errno.EPERM, errno.EACCES}


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    max_retries: int,
    initial_delay: float,
    max_delay: float,
    multiplier: float = 2.0,
    should_retry: Callable[[BaseException], bool] = lambda exc: True,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn`` until it succeeds, making at most ``max_retries`` extra attempts.

    The delay starts at ``initial_delay`` and grows by ``multiplier`` up to
    ``max_delay``. Exceptions rejected by ``should_retry`` propagate at once.
    """
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as exc:
            if attempt >= max_retries or not should_retry(exc):
                raise
            attempt += 1
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                label,
                attempt,
                max_retries,
                exc,
                delay,
            )
            sleep(delay)
            delay = min(delay * multiplier, max_delay)


def is_transient_http_error(exc: BaseException) -> bool:
    if isinstance(exc, requests.HTTPError):
        status = exc.response.status_code if exc.response is not None else None
        return status is not None and 500 <= status < 600
    return isinstance(exc, (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError))


def is_lock_error(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and exc.errno in LOCK_ERRNOS


def retry_http(fn: Callable[[], T], label: str, sleep: Callable[[float], None] = time.sleep) -> T:
    return retry_with_backoff(
        fn,
        max_retries=settings.retry_max_retries,
        initial_delay=settings.retry_initial_delay,
        max_delay=settings.retry_max_delay,
        multiplier=settings.retry_multiplier,
        should_retry=is_transient_http_error,
        label=label,
        sleep=sleep,
    )


def retry_file_operation(fn: Callable[[], T], label: str, sleep: Callable[[float], None] = time.sleep) -> T:
    return retry_with_backoff(
        fn,
        max_retries=settings.cleanup_max_retries,
        initial_delay=settings.cleanup_initial_delay,
        max_delay=settings.retry_max_delay,
        multiplier=settings.retry_multiplier,
        should_retry=is_lock_error,
        label=label,
        sleep=sleep,
    )
