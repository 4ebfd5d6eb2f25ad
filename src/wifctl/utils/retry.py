"""Retry helpers for eventually consistent APIs

The IAM API is eventually consistent: a freshly created service account may not be visible to the policy APIs for a little while, and
the control plane may not see resources that were just made. The helpers in here keep retrying an operation with a fixed delay until
a wall-clock budget is exhausted.

:Module: wifctl.utils.retry
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import time
from typing import Callable, Optional, Tuple

from retry.api import retry_call

from wifctl.utils.logging import LOGGER


class RetryTimeoutError(Exception):
    """Raised when the retry budget is exhausted. The last error seen is chained as the `__cause__`."""


class _AttemptFailedError(Exception):
    """Internal signal to the retry library that the attempt should be retried."""


# The wrapped function returns: (should_retry, error). A `None` error means success.
RetryableFunction = Callable[[], Tuple[bool, Optional[Exception]]]


def retry_with_timeout(func: RetryableFunction, timeout_seconds: float, delay_seconds: float, description: str = "operation") -> None:
    """
    This will invoke `func` until it succeeds, until it reports that the error is not retryable, or until `timeout_seconds` have passed.

    - On success (error is None) this returns right away.
    - If `should_retry` is False, the error is raised as-is without any further attempts.
    - Otherwise, after the budget is exhausted a RetryTimeoutError is raised from the last error.
    """
    deadline = time.monotonic() + timeout_seconds
    attempts = 0

    def attempt() -> None:
        nonlocal attempts
        attempts += 1

        should_retry, error = func()
        if error is None:
            return

        if not should_retry:
            raise error

        if time.monotonic() + delay_seconds >= deadline:
            LOGGER.error(f"[⏰] Gave up on the {description} after {attempts} attempt(s): {error}")
            raise RetryTimeoutError(f"timed out after {attempts} attempt(s) waiting for the {description}: {error}") from error

        LOGGER.debug(f"[🔁] Attempt {attempts} of the {description} failed, retrying in {delay_seconds}s: {error}")
        raise _AttemptFailedError(error)

    # tries=-1 means forever. The deadline above bounds this:
    retry_call(attempt, exceptions=_AttemptFailedError, tries=-1, delay=delay_seconds, logger=None)
