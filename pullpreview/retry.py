"""
Retry policy, deadlines and long-running operation polling.
"""

import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from azure.core.exceptions import ClientAuthenticationError, HttpResponseError
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_delay,
    wait_exponential,
    wait_random,
)

from .errors import DeploymentTimeoutError, RetryBudgetExceededError
from .events import DeploymentObserver, EventTypes, guarded

T = TypeVar("T")

# Error codes for requests that can never succeed as given
PERMANENT_ERROR_CODES = (
    "InvalidParameter",
    "InvalidResourceGroup",
    "AuthorizationFailed",
    "InvalidSubscriptionId",
)

INITIAL_INTERVAL = 0.5
MAX_INTERVAL = 30.0
BACKOFF_BASE = 2
JITTER = 0.5


class Deadline:
    """
    Absolute point in time after which an operation must give up.

    Args:
        seconds: Time from now until the deadline
        clock: Monotonic clock, injectable for tests
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, operation: str) -> None:
        if self.expired:
            raise DeploymentTimeoutError(
                f"deadline of {self.seconds:.0f}s exceeded before {operation}",
                {"operation": operation, "deadline": self.seconds},
            )


def error_code(error: BaseException) -> Optional[str]:
    """Return the provider's symbolic error code, if the error carries one."""
    if isinstance(error, HttpResponseError):
        odata = getattr(error, "error", None)
        code = getattr(odata, "code", None)
        if code:
            return code
    return getattr(error, "code", None) or None


def is_permanent_error(error: BaseException) -> bool:
    """
    Classify an error as permanent (never retried) or transient.

    Args:
        error: Exception raised by a provider call

    Returns:
        True if retrying cannot make the request succeed
    """
    if isinstance(error, ClientAuthenticationError):
        return True

    code = error_code(error)
    if code is not None and code in PERMANENT_ERROR_CODES:
        return True

    # Errors raised without a parsed body still name the code in their text
    text = str(error)
    return any(permanent in text for permanent in PERMANENT_ERROR_CODES)


def with_retry(
    operation: Callable[[], T],
    budget: float,
    deadline: Optional[Deadline] = None,
    observer: Optional[DeploymentObserver] = None,
    description: str = "operation",
    sleep: Callable[[float], Any] = time.sleep,
    propagate: Tuple[Type[BaseException], ...] = (),
) -> T:
    """
    Run an idempotent operation, retrying transient failures with backoff.

    Args:
        operation: Zero-argument callable; may be invoked several times
        budget: Seconds of retrying allowed before giving up
        deadline: Overall caller deadline; retries stop once it passes
        observer: Receives a RETRY event before each backoff sleep
        description: Operation name used in events and errors
        sleep: Sleep function, injectable for tests
        propagate: Exception types passed straight to the caller untouched

    Returns:
        Whatever the operation returned on its first successful attempt

    Raises:
        The original error if it is permanent,
        RetryBudgetExceededError once transient failures exhaust the budget,
        DeploymentTimeoutError if the deadline passes first
    """
    observer = guarded(observer)

    def is_retryable(error: BaseException) -> bool:
        if isinstance(error, (DeploymentTimeoutError,) + tuple(propagate)):
            return False
        return not is_permanent_error(error)

    stop = stop_after_delay(budget)
    if deadline is not None:
        stop = stop | (lambda retry_state: deadline.expired)

    def before_sleep(retry_state):
        error = retry_state.outcome.exception()
        observer.emit(EventTypes.RETRY, {
            "operation": description,
            "attempt": retry_state.attempt_number,
            "error": str(error),
            "code": error_code(error),
            "wait_s": round(retry_state.next_action.sleep, 2),
        })

    backoff = wait_exponential(
        multiplier=INITIAL_INTERVAL, max=MAX_INTERVAL, exp_base=BACKOFF_BASE
    ) + wait_random(0, JITTER)

    def wait(retry_state) -> float:
        # Never sleep past the caller's deadline
        seconds = backoff(retry_state)
        if deadline is not None:
            seconds = min(seconds, deadline.remaining())
        return seconds

    retryer = Retrying(
        stop=stop,
        wait=wait,
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep,
        sleep=sleep,
    )

    if deadline is not None:
        deadline.check(description)

    try:
        return retryer(operation)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        if deadline is not None and deadline.expired:
            raise DeploymentTimeoutError(
                f"deadline of {deadline.seconds:.0f}s exceeded while retrying {description}",
                {"operation": description, "deadline": deadline.seconds},
            ) from last_error
        raise RetryBudgetExceededError(description, budget, last_error) from last_error


def poll_until_done(poller, deadline: Optional[Deadline] = None, description: str = "operation"):
    """
    Block until a long-running operation finishes.

    Args:
        poller: azure-core LROPoller (anything with wait/done/result)
        deadline: Overall caller deadline bounding the wait
        description: Operation name used in errors

    Returns:
        The operation's final resource
    """
    timeout = deadline.remaining() if deadline is not None else None
    poller.wait(timeout=timeout)
    if not poller.done():
        raise DeploymentTimeoutError(
            f"{description} did not complete before the deadline",
            {"operation": description, "waited_s": timeout},
        )
    return poller.result()
