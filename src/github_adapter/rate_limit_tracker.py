"""
RateLimitTracker module for tracking the GitHub API quota observed across requests
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


class RateLimitTarget(Enum):
    """Independently tracked rate limit buckets"""
    CORE = "core"
    SEARCH = "search"
    GRAPHQL = "graphql"
    INTEGRATION_MANIFEST = "integration_manifest"
    NONE = "none"


# Placeholder values for buckets that have never been observed
UNKNOWN_LIMIT = 1000000
UNKNOWN_REMAINING = 999999
UNKNOWN_LIMIT_RESET_SECONDS = 60 * 60


def _parse_server_date(server_date: Optional[str]) -> Optional[int]:
    """
    Parse an RFC 1123 ``Date`` header into epoch seconds

    Args:
        server_date: Raw header value, may be None or blank

    Returns:
        Epoch seconds, or None when the header is missing or malformed
    """
    if server_date is None or not server_date.strip():
        return None
    try:
        return int(parsedate_to_datetime(server_date).timestamp())
    except (TypeError, ValueError, IndexError):
        logger.debug(f"Malformed Date header value {server_date}")
        return None


@dataclass(frozen=True)
class RateLimitRecord:
    """Quota observed for one bucket at one point in time"""
    limit: int
    remaining: int
    reset_epoch_seconds: int
    created_at_epoch_seconds: int
    reset_date: datetime

    @classmethod
    def create(cls, limit: int, remaining: int, reset_epoch_seconds: int,
               server_date: Optional[str] = None,
               created_at_epoch_seconds: Optional[int] = None) -> 'RateLimitRecord':
        """
        Build a record whose reset date is corrected for local/server clock skew

        The reset date is the local creation time plus the number of seconds the
        server says remain until reset, so a skewed local clock does not cause an
        early or late reset.

        Args:
            limit: Value of X-RateLimit-Limit
            remaining: Value of X-RateLimit-Remaining
            reset_epoch_seconds: Value of X-RateLimit-Reset (server clock)
            server_date: Value of the response Date header, if any
            created_at_epoch_seconds: Local observation time, defaults to now

        Returns:
            RateLimitRecord with a derived reset_date
        """
        if created_at_epoch_seconds is None:
            created_at_epoch_seconds = int(time.time())

        server_epoch_seconds = _parse_server_date(server_date)
        if server_epoch_seconds is None:
            server_epoch_seconds = created_at_epoch_seconds

        seconds_until_reset = reset_epoch_seconds - server_epoch_seconds
        reset_date = datetime.fromtimestamp(created_at_epoch_seconds + seconds_until_reset, tz=timezone.utc)

        return cls(
            limit=limit,
            remaining=remaining,
            reset_epoch_seconds=reset_epoch_seconds,
            created_at_epoch_seconds=created_at_epoch_seconds,
            reset_date=reset_date
        )

    @classmethod
    def unknown(cls) -> 'RateLimitRecord':
        """Placeholder for a bucket that has not been observed yet"""
        now = int(time.time())
        return cls.create(UNKNOWN_LIMIT, UNKNOWN_REMAINING, now + UNKNOWN_LIMIT_RESET_SECONDS,
                          created_at_epoch_seconds=now)

    @classmethod
    def from_json(cls, data: Dict[str, Any], server_date: Optional[str] = None) -> 'RateLimitRecord':
        """Build a record from one entry of the /rate_limit ``resources`` object"""
        return cls.create(int(data['limit']), int(data['remaining']), int(data['reset']), server_date)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.reset_date < now

    def seconds_until_reset(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (self.reset_date - now).total_seconds()

    @property
    def is_unknown(self) -> bool:
        return self.limit == UNKNOWN_LIMIT and self.remaining == UNKNOWN_REMAINING


@dataclass(frozen=True)
class RateLimit:
    """Snapshot of all rate limit buckets"""
    core: RateLimitRecord = field(default_factory=RateLimitRecord.unknown)
    search: RateLimitRecord = field(default_factory=RateLimitRecord.unknown)
    graphql: RateLimitRecord = field(default_factory=RateLimitRecord.unknown)
    integration_manifest: RateLimitRecord = field(default_factory=RateLimitRecord.unknown)

    @classmethod
    def unknown(cls) -> 'RateLimit':
        return cls()

    @classmethod
    def from_json(cls, data: Dict[str, Any], server_date: Optional[str] = None) -> 'RateLimit':
        """
        Parse the body of ``GET /rate_limit``

        Args:
            data: Decoded JSON body, holding a ``resources`` object
            server_date: Response Date header used for skew correction

        Returns:
            RateLimit with unknown placeholders for missing buckets
        """
        resources = data.get('resources', {})
        records = {}
        for target in (RateLimitTarget.CORE, RateLimitTarget.SEARCH,
                       RateLimitTarget.GRAPHQL, RateLimitTarget.INTEGRATION_MANIFEST):
            if target.value in resources:
                records[target.value] = RateLimitRecord.from_json(resources[target.value], server_date)
        return cls(**records)

    def record(self, target: RateLimitTarget) -> RateLimitRecord:
        if target == RateLimitTarget.NONE:
            raise ValueError("RateLimitTarget.NONE has no record")
        return getattr(self, target.value)

    @property
    def remaining(self) -> int:
        return self.core.remaining

    @property
    def limit(self) -> int:
        return self.core.limit

    @property
    def reset_date(self) -> datetime:
        return self.core.reset_date

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.core.is_expired(now)


class RateLimitTracker:
    """
    Thread-safe ledger of the last quota observed per bucket

    The tracker is advisory: it never blocks and never talks to the network.
    Each update swaps a whole record so concurrent writers cannot interleave
    fields of one bucket; the last write wins.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[RateLimitTarget, RateLimitRecord] = {}
        self.logger = logging.getLogger(__name__)

    def observe(self, target: RateLimitTarget, limit: int, remaining: int,
                reset_epoch_seconds: int, server_date: Optional[str] = None) -> Optional[RateLimitRecord]:
        """
        Record the quota headers of one response

        Args:
            target: Bucket the response counted against
            limit: X-RateLimit-Limit
            remaining: X-RateLimit-Remaining
            reset_epoch_seconds: X-RateLimit-Reset
            server_date: Response Date header

        Returns:
            The stored record, or None when the target is not tracked
        """
        if target == RateLimitTarget.NONE:
            return None
        record = RateLimitRecord.create(limit, remaining, reset_epoch_seconds, server_date)
        self.update(target, record)
        return record

    def update(self, target: RateLimitTarget, record: RateLimitRecord) -> None:
        if target == RateLimitTarget.NONE:
            return
        with self._lock:
            self._records[target] = record
        self.logger.debug(f"Rate limit {target.value}: {record.remaining}/{record.limit} "
                          f"resets at {record.reset_date.isoformat()}")

    def update_from(self, rate_limit: RateLimit) -> None:
        """Replace every bucket from a full snapshot"""
        with self._lock:
            self._records[RateLimitTarget.CORE] = rate_limit.core
            self._records[RateLimitTarget.SEARCH] = rate_limit.search
            self._records[RateLimitTarget.GRAPHQL] = rate_limit.graphql
            self._records[RateLimitTarget.INTEGRATION_MANIFEST] = rate_limit.integration_manifest

    def current(self, target: RateLimitTarget) -> RateLimitRecord:
        """
        Latest record for a bucket

        Args:
            target: Bucket to look up

        Returns:
            Last observed record, or an unknown placeholder if never observed
        """
        with self._lock:
            record = self._records.get(target)
        return record if record is not None else RateLimitRecord.unknown()

    def snapshot(self) -> RateLimit:
        return RateLimit(
            core=self.current(RateLimitTarget.CORE),
            search=self.current(RateLimitTarget.SEARCH),
            graphql=self.current(RateLimitTarget.GRAPHQL),
            integration_manifest=self.current(RateLimitTarget.INTEGRATION_MANIFEST)
        )
