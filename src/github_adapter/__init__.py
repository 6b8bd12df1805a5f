"""
GitHub REST API adapter package
Provides the paginated request engine: request building, retry and error
classification, lazy page iteration and shared rate limit tracking
"""

from .exceptions import (
    GitHubAPIError, HttpException, NotFoundError, OTPRequiredError,
    PermanentAPIError, PaginationStateError
)
from .rate_limit_tracker import RateLimitTarget, RateLimitRecord, RateLimit, RateLimitTracker
from .request import APIRequest, RequestBuilder
from .connector import Connector, ConnectorResponse, RequestsConnector, CachingConnector
from .response import APIResponse
from .rate_limit_handler import (
    RateLimitHandler, AbuseLimitHandler, RateLimitChecker, ThresholdRateLimitChecker
)
from .pagination import (
    ArrayPage, SearchResultPage, PageIterator, ItemIterator, PaginatedEndpoint
)
from .http_client import HTTPClient
from .config_loader import ConfigLoader, ClientConfig, ConfigurationError, MissingEnvironmentError

__all__ = [
    'GitHubAPIError',
    'HttpException',
    'NotFoundError',
    'OTPRequiredError',
    'PermanentAPIError',
    'PaginationStateError',
    'RateLimitTarget',
    'RateLimitRecord',
    'RateLimit',
    'RateLimitTracker',
    'APIRequest',
    'RequestBuilder',
    'Connector',
    'ConnectorResponse',
    'RequestsConnector',
    'CachingConnector',
    'APIResponse',
    'RateLimitHandler',
    'AbuseLimitHandler',
    'RateLimitChecker',
    'ThresholdRateLimitChecker',
    'ArrayPage',
    'SearchResultPage',
    'PageIterator',
    'ItemIterator',
    'PaginatedEndpoint',
    'HTTPClient',
    'ConfigLoader',
    'ClientConfig',
    'ConfigurationError',
    'MissingEnvironmentError'
]
