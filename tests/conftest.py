import pytest
from unittest.mock import patch

from github_adapter.rate_limit_tracker import RateLimitTracker


@pytest.fixture
def tracker():
    """Fresh, isolated rate limit tracker per test"""
    return RateLimitTracker()


@pytest.fixture
def mock_sleep():
    with patch('time.sleep') as sleep:
        yield sleep
