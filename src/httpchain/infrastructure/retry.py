"""Retry layer of the transport chain, built on tenacity.

The executor re-sends a request when the attempt ended in a transient
transport error or a configured retryable status. Delays follow exponential
backoff, except that a ``Retry-After`` header on a 429 response takes
precedence. Waits go through the request context so cancellation and
deadlines interrupt them.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from httpchain.domain.config.retry import RetryPolicy
from httpchain.domain.errors import (
    BodyNotReusableError,
    MaxRetriesExceededError,
    NameResolutionFailedError,
    TransportError,
)
from httpchain.domain.models.attempt import Attempt
from httpchain.domain.models.request import Request
from httpchain.infrastructure.http_client import buffer_response, drain_and_close
from httpchain.infrastructure.transport.base import Handler, Middleware

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a Retry-After header value into seconds

    Args:
        value: Header value, either delta-seconds or an HTTP-date
        now: Reference time for HTTP-dates (defaults to current UTC time)

    Returns:
        Positive delay in seconds, or None if the value is missing, invalid or not in the future
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        seconds = float(int(value))
        return seconds if seconds > 0 else None

    try:
        target = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if target is None:
        return None
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    delay = (target - now).total_seconds()
    return delay if delay > 0 else None


def backoff_delay(policy: RetryPolicy, attempt: int, rng: Optional[random.Random] = None) -> float:
    """Exponential backoff for a 0-based attempt index

    ``base_delay * 2**attempt`` clamped to ``max_delay``. With jitter the value
    is scaled by a random factor in ``[0.8, 0.8 + 0.4 * fraction]`` where
    ``fraction`` grows with the attempt index up to 1.
    """
    try:
        delay = policy.base_delay * (2**attempt)
    except OverflowError:
        delay = policy.max_delay
    delay = min(delay, policy.max_delay)

    if policy.jitter:
        fraction = min(1.0, (attempt + 1) / max(1, policy.max_attempts))
        factor = (rng or random).uniform(0.8, 0.8 + 0.4 * fraction)
        delay = min(delay * factor, policy.max_delay)
    return max(0.0, delay)


def _outcome_response(retry_state: RetryCallState) -> Optional[requests.Response]:
    outcome = retry_state.outcome
    if outcome is None or outcome.failed:
        return None
    return outcome.result()


def _outcome_error(retry_state: RetryCallState) -> Optional[BaseException]:
    outcome = retry_state.outcome
    if outcome is None or not outcome.failed:
        return None
    return outcome.exception()


class wait_retry_after_or_backoff(wait_base):
    """Wait strategy: Retry-After on 429 responses, exponential backoff otherwise"""

    def __init__(self, policy: RetryPolicy, rng: Optional[random.Random] = None):
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        response = _outcome_response(retry_state)
        if response is not None and response.status_code == TOO_MANY_REQUESTS:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            if retry_after is not None:
                return retry_after
        return backoff_delay(self.policy, retry_state.attempt_number - 1, self.rng)


class RetryExecutor(Middleware):
    """Outermost layer of the chain: re-executes the inner chain per policy"""

    def __init__(
        self,
        policy: RetryPolicy,
        next_handler: Optional[Handler] = None,
        *,
        sleep: Optional[Callable[[float], None]] = None,
        on_retry: Optional[Callable[[Attempt], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize retry executor

        Args:
            policy: Retry policy (read, never mutated)
            next_handler: Handler to delegate each attempt to
            sleep: Replacement for the context-aware wait (tests)
            on_retry: Observer called with each retried attempt
            rng: Random source for jitter
        """
        super().__init__(next_handler)
        self.policy = policy
        self._sleep = sleep
        self._on_retry = on_retry
        self._rng = rng

    def is_retryable_error(self, error: BaseException) -> bool:
        if isinstance(error, NameResolutionFailedError):
            return self.policy.retry_on_dns_failure
        return isinstance(error, TransportError)

    def is_retryable_response(self, response: Optional[requests.Response]) -> bool:
        return response is not None and response.status_code in self.policy.retry_statuses

    def send(self, request: Request) -> requests.Response:
        return _RetryRun(self, request).execute()


class _RetryRun:
    """State of one request's retry loop; discarded when the loop ends"""

    def __init__(self, executor: RetryExecutor, request: Request):
        self.executor = executor
        self.policy = executor.policy
        self.request = request
        self.attempts = 0

    def execute(self) -> requests.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.policy.max_attempts + 1) | self._body_not_reusable,
            wait=wait_retry_after_or_backoff(self.policy, self.executor._rng),
            retry=(
                retry_if_exception(self.executor.is_retryable_error)
                | retry_if_result(self.executor.is_retryable_response)
            ),
            before_sleep=self._before_sleep,
            sleep=self._sleep,
            retry_error_callback=self._give_up,
        )
        return retrying(self._attempt)

    def _attempt(self) -> requests.Response:
        index = self.attempts
        self.attempts += 1
        if index > 0:
            try:
                self.request.reset_body()
            except Exception as e:
                raise BodyNotReusableError(
                    f"failed to get request body for retry attempt {index}: {e}", attempts=index
                ) from e
        self.request.context.raise_if_done()
        return self.executor.next.send(self.request)

    def _body_not_reusable(self, retry_state: RetryCallState) -> bool:
        return not self.request.body_reusable

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        attempt = Attempt(
            index=retry_state.attempt_number - 1,
            request=self.request,
            response=_outcome_response(retry_state),
            error=_outcome_error(retry_state),
            retryable=True,
            delay=delay,
        )
        if attempt.response is not None:
            drain_and_close(attempt.response)
        logger.warning(
            f"{self.request.method} {self.request.url} failed "
            f"(attempt {attempt.index + 1}/{self.policy.max_attempts + 1}): {attempt.describe()}. "
            f"Retrying in {delay:.3f}s..."
        )
        if self.executor._on_retry is not None:
            self.executor._on_retry(attempt)

    def _sleep(self, seconds: float) -> None:
        if self.executor._sleep is None:
            self.request.context.sleep(seconds)
            return
        self.executor._sleep(seconds)
        self.request.context.raise_if_done()

    def _give_up(self, retry_state: RetryCallState) -> requests.Response:
        response = _outcome_response(retry_state)
        error = _outcome_error(retry_state)
        if response is not None:
            buffer_response(response)

        if not self.request.body_reusable:
            logger.warning(
                f"{self.request.method} {self.request.url}: request body cannot be regenerated, "
                f"not retrying after {self.attempts} attempt(s)"
            )
            raise BodyNotReusableError(
                "request body is not reusable; retry aborted",
                attempts=self.attempts,
                response=response,
            ) from error

        logger.error(f"{self.request.method} {self.request.url} failed after {self.attempts} attempts")
        raise MaxRetriesExceededError(self.attempts, response=response, last_error=error) from error
