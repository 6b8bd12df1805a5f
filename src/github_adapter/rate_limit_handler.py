"""
Pluggable policies for exhausted quotas, abuse limits and pre-request throttling
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from github_adapter.connector import ConnectorResponse
from github_adapter.exceptions import HttpException, PermanentAPIError
from github_adapter.rate_limit_tracker import RateLimitRecord


# Wait used when the server gives no usable hint
DEFAULT_WAIT_SECONDS = 60.0
MINIMUM_WAIT_SECONDS = 1.0


class RateLimitHandler(ABC):
    """
    Decides what happens when the primary quota is exhausted

    on_error either returns, and the request is retried, or raises.
    """

    WAIT: 'RateLimitHandler'
    FAIL: 'RateLimitHandler'

    @abstractmethod
    def on_error(self, error: HttpException, response: ConnectorResponse) -> None:
        ...


class WaitRateLimitHandler(RateLimitHandler):
    """Block until the quota resets"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def on_error(self, error: HttpException, response: ConnectorResponse) -> None:
        wait_seconds = self.parse_wait_seconds(response)
        self.logger.info(f"Rate limit reached for {response.url}. Sleeping {wait_seconds:.1f} seconds until reset")
        time.sleep(wait_seconds)

    def parse_wait_seconds(self, response: ConnectorResponse) -> float:
        reset = response.header('X-RateLimit-Reset')
        if reset is None:
            return DEFAULT_WAIT_SECONDS
        try:
            reset_epoch_seconds = int(reset)
        except ValueError:
            return DEFAULT_WAIT_SECONDS
        return max(reset_epoch_seconds - time.time(), MINIMUM_WAIT_SECONDS)


class FailRateLimitHandler(RateLimitHandler):
    """Give up immediately"""

    def on_error(self, error: HttpException, response: ConnectorResponse) -> None:
        raise PermanentAPIError(
            "API rate limit reached",
            status_code=error.status_code,
            reason=error.reason,
            url=error.url,
            body=error.body,
            headers=error.headers
        ) from error


RateLimitHandler.WAIT = WaitRateLimitHandler()
RateLimitHandler.FAIL = FailRateLimitHandler()


class AbuseLimitHandler(ABC):
    """
    Decides what happens when GitHub's secondary ("abuse") limiter triggers

    Signalled by a 403 carrying Retry-After. on_error either returns, and the
    request is retried, or raises.
    """

    WAIT: 'AbuseLimitHandler'
    FAIL: 'AbuseLimitHandler'

    @abstractmethod
    def on_error(self, error: HttpException, response: ConnectorResponse) -> None:
        ...


class WaitAbuseLimitHandler(AbuseLimitHandler):
    """Sleep for the Retry-After interval"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def on_error(self, error: HttpException, response: ConnectorResponse) -> None:
        wait_seconds = self.parse_retry_after(response.header('Retry-After'))
        self.logger.warning(f"Abuse limit reached for {response.url}. Sleeping {wait_seconds:.1f} seconds")
        time.sleep(wait_seconds)

    def parse_retry_after(self, retry_after: Optional[str]) -> float:
        """
        Interpret a Retry-After value

        Args:
            retry_after: Delay in seconds or an HTTP-date

        Returns:
            Seconds to wait, falling back to one minute
        """
        if retry_after is None or not retry_after.strip():
            return DEFAULT_WAIT_SECONDS
        try:
            return max(float(retry_after), MINIMUM_WAIT_SECONDS)
        except ValueError:
            pass
        try:
            retry_at = parsedate_to_datetime(retry_after)
        except (TypeError, ValueError, IndexError):
            return DEFAULT_WAIT_SECONDS
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        return max((retry_at - datetime.now(timezone.utc)).total_seconds(), MINIMUM_WAIT_SECONDS)


class FailAbuseLimitHandler(AbuseLimitHandler):
    """Give up immediately"""

    def on_error(self, error: HttpException, response: ConnectorResponse) -> None:
        raise PermanentAPIError(
            "Abuse limit reached",
            status_code=error.status_code,
            reason=error.reason,
            url=error.url,
            body=error.body,
            headers=error.headers
        ) from error


AbuseLimitHandler.WAIT = WaitAbuseLimitHandler()
AbuseLimitHandler.FAIL = FailAbuseLimitHandler()


class RateLimitChecker:
    """
    Consulted before every request with the tracked record of its bucket

    The base checker never waits. Subclasses throttle callers cooperatively so
    requests sharing one tracker stop before the server starts refusing them.
    """

    NONE: 'RateLimitChecker'

    def check_rate_limit(self, record: RateLimitRecord) -> bool:
        """
        Optionally block before a request

        Args:
            record: Current record of the request's bucket

        Returns:
            True if the checker slept
        """
        return False


class ThresholdRateLimitChecker(RateLimitChecker):
    """Sleep until reset once remaining drops to a threshold"""

    def __init__(self, sleep_at_or_below: int):
        if sleep_at_or_below < 0:
            raise ValueError("sleep_at_or_below must be zero or greater")
        self.sleep_at_or_below = sleep_at_or_below
        self.logger = logging.getLogger(__name__)

    def check_rate_limit(self, record: RateLimitRecord) -> bool:
        if record.remaining > self.sleep_at_or_below or record.is_expired():
            return False

        wait_seconds = max(record.seconds_until_reset(), 0.0) + MINIMUM_WAIT_SECONDS
        self.logger.info(
            f"Rate limit remaining {record.remaining} is at or below {self.sleep_at_or_below}. "
            f"Sleeping {wait_seconds:.1f} seconds until reset"
        )
        time.sleep(wait_seconds)
        return True


RateLimitChecker.NONE = RateLimitChecker()
