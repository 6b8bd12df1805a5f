"""
Test suite for RateLimitTracker component
Following TDD approach with AAA pattern and descriptive naming
"""

import threading
import time
from datetime import datetime, timedelta, timezone
from email.utils import formatdate

import pytest

from github_adapter.rate_limit_tracker import (
    UNKNOWN_LIMIT, UNKNOWN_REMAINING, RateLimit, RateLimitRecord, RateLimitTarget, RateLimitTracker
)


T = 1_700_000_000


class TestRateLimitRecord:
    """Test suite for skew-corrected rate limit records"""

    def test_create_with_server_date_behind_local_clock_shifts_reset(self):
        """
        Test that the reset date is local creation time plus the server's time-to-reset
        """
        # Arrange
        server_date = formatdate(T - 10, usegmt=True)

        # Act
        record = RateLimitRecord.create(5000, 4999, T + 60, server_date, created_at_epoch_seconds=T)

        # Assert
        assert record.reset_date == datetime.fromtimestamp(T + 70, tz=timezone.utc)
        assert record.reset_epoch_seconds == T + 60

    def test_create_without_server_date_uses_reset_as_is(self):
        """
        Test that a missing Date header means no skew correction
        """
        # Act
        record = RateLimitRecord.create(5000, 4999, T + 60, None, created_at_epoch_seconds=T)

        # Assert
        assert record.reset_date == datetime.fromtimestamp(T + 60, tz=timezone.utc)

    def test_create_with_malformed_server_date_ignores_it(self):
        """
        Test that an unparseable Date header is treated as missing
        """
        # Act
        record = RateLimitRecord.create(5000, 4999, T + 60, 'not a date', created_at_epoch_seconds=T)

        # Assert
        assert record.reset_date == datetime.fromtimestamp(T + 60, tz=timezone.utc)

    def test_unknown_record_has_placeholder_values_and_resets_in_an_hour(self):
        """
        Test that the placeholder record is recognisable and not expired
        """
        # Act
        record = RateLimitRecord.unknown()

        # Assert
        assert record.limit == UNKNOWN_LIMIT
        assert record.remaining == UNKNOWN_REMAINING
        assert record.is_unknown is True
        assert record.is_expired() is False
        assert 3590 < record.seconds_until_reset() <= 3600

    def test_is_expired_compares_reset_date_with_now(self):
        """
        Test expiry before and after the reset date
        """
        # Arrange
        record = RateLimitRecord.create(60, 0, T + 100, created_at_epoch_seconds=T)
        reset = datetime.fromtimestamp(T + 100, tz=timezone.utc)

        # Act & Assert
        assert record.is_expired(reset - timedelta(seconds=1)) is False
        assert record.is_expired(reset + timedelta(seconds=1)) is True
        assert record.seconds_until_reset(reset - timedelta(seconds=30)) == 30

    def test_from_json_reads_resource_entry(self):
        """
        Test that a /rate_limit resource entry becomes a record
        """
        # Act
        record = RateLimitRecord.from_json({'limit': 30, 'remaining': 12, 'reset': T + 30, 'used': 18})

        # Assert
        assert record.limit == 30
        assert record.remaining == 12
        assert record.is_unknown is False


class TestRateLimit:
    """Test suite for the multi-bucket snapshot"""

    def test_from_json_parses_every_bucket_and_defaults_missing_ones(self):
        """
        Test that known buckets are parsed and absent buckets stay unknown
        """
        # Arrange
        data = {
            'resources': {
                'core': {'limit': 5000, 'remaining': 4990, 'reset': T + 3000},
                'search': {'limit': 30, 'remaining': 29, 'reset': T + 60},
                'graphql': {'limit': 5000, 'remaining': 5000, 'reset': T + 3600},
            },
            'rate': {'limit': 5000, 'remaining': 4990, 'reset': T + 3000}
        }

        # Act
        rate_limit = RateLimit.from_json(data, formatdate(T, usegmt=True))

        # Assert
        assert rate_limit.core.remaining == 4990
        assert rate_limit.search.limit == 30
        assert rate_limit.graphql.remaining == 5000
        assert rate_limit.integration_manifest.is_unknown is True
        assert rate_limit.remaining == 4990
        assert rate_limit.limit == 5000

    def test_record_lookup_by_target(self):
        """
        Test that buckets are addressable by target and NONE is rejected
        """
        # Arrange
        rate_limit = RateLimit.unknown()

        # Act & Assert
        assert rate_limit.record(RateLimitTarget.SEARCH) is rate_limit.search
        with pytest.raises(ValueError):
            rate_limit.record(RateLimitTarget.NONE)


class TestRateLimitTracker:
    """Test suite for the shared rate limit ledger"""

    def test_current_with_no_observation_returns_unknown_placeholder(self, tracker):
        """
        Test that an unobserved bucket reports the unknown placeholder
        """
        # Act
        record = tracker.current(RateLimitTarget.CORE)

        # Assert
        assert record.is_unknown is True

    def test_observe_stores_record_for_target_only(self, tracker):
        """
        Test that an observation updates exactly one bucket
        """
        # Act
        stored = tracker.observe(RateLimitTarget.SEARCH, 30, 28, int(time.time()) + 60)

        # Assert
        assert tracker.current(RateLimitTarget.SEARCH) == stored
        assert tracker.current(RateLimitTarget.SEARCH).remaining == 28
        assert tracker.current(RateLimitTarget.CORE).is_unknown is True

    def test_observe_with_none_target_is_ignored(self, tracker):
        """
        Test that requests exempt from tracking leave the tracker untouched
        """
        # Act
        stored = tracker.observe(RateLimitTarget.NONE, 5000, 0, int(time.time()) + 60)

        # Assert
        assert stored is None
        assert tracker.snapshot().core.is_unknown is True

    def test_observe_last_write_wins(self, tracker):
        """
        Test that a later observation replaces the earlier one
        """
        # Arrange
        reset = int(time.time()) + 600
        tracker.observe(RateLimitTarget.CORE, 5000, 4000, reset)

        # Act
        tracker.observe(RateLimitTarget.CORE, 5000, 4500, reset)

        # Assert
        assert tracker.current(RateLimitTarget.CORE).remaining == 4500

    def test_update_from_replaces_all_buckets(self, tracker):
        """
        Test that a full snapshot overwrites every bucket
        """
        # Arrange
        rate_limit = RateLimit(
            core=RateLimitRecord.create(5000, 1, T + 60, created_at_epoch_seconds=T),
            search=RateLimitRecord.create(30, 2, T + 60, created_at_epoch_seconds=T)
        )

        # Act
        tracker.update_from(rate_limit)
        snapshot = tracker.snapshot()

        # Assert
        assert snapshot.core.remaining == 1
        assert snapshot.search.remaining == 2
        assert snapshot.graphql.is_unknown is True

    def test_concurrent_observations_never_mix_fields(self, tracker):
        """
        Test that concurrent writers always leave a whole record behind
        """
        # Arrange
        def writer(value):
            for _ in range(200):
                tracker.observe(RateLimitTarget.CORE, value, value, T + value)

        threads = [threading.Thread(target=writer, args=(value,)) for value in range(1, 9)]

        # Act
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Assert
        record = tracker.current(RateLimitTarget.CORE)
        assert record.limit == record.remaining
        assert record.reset_epoch_seconds == T + record.limit
