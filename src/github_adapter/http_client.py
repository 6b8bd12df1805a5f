"""
HTTPClient module for executing GitHub API requests with retry, error
classification and rate limit tracking
"""

import json
import logging
import time
from typing import Any, BinaryIO, Callable, List, Optional, TYPE_CHECKING

from github_adapter.connector import CONNECTION_ERRORS, CachingConnector, Connector, ConnectorResponse, RequestsConnector
from github_adapter.exceptions import (
    HttpException, NotFoundError, OTPRequiredError, PermanentAPIError
)
from github_adapter.pagination import ArrayPage, PaginatedEndpoint, SearchResultPage
from github_adapter.rate_limit_handler import AbuseLimitHandler, RateLimitChecker, RateLimitHandler
from github_adapter.rate_limit_tracker import RateLimit, RateLimitTarget, RateLimitTracker
from github_adapter.request import DEFAULT_API_URL, APIRequest, RequestBuilder
from github_adapter.response import APIResponse, parse_json_body

if TYPE_CHECKING:
    from github_adapter.config_loader import ClientConfig


class HTTPClient:
    """HTTP client with connection retries, error classification and rate limit tracking"""

    # Connection-level failures retried before giving up
    CONNECTION_ERROR_RETRIES = 2
    RETRY_BACKOFF_SECONDS = 0.1

    def __init__(self, connector: Optional[Connector] = None,
                 rate_limit_tracker: Optional[RateLimitTracker] = None,
                 api_url: str = DEFAULT_API_URL,
                 rate_limit_handler: RateLimitHandler = RateLimitHandler.WAIT,
                 abuse_limit_handler: AbuseLimitHandler = AbuseLimitHandler.WAIT,
                 rate_limit_checker: RateLimitChecker = RateLimitChecker.NONE,
                 connection_retries: int = CONNECTION_ERROR_RETRIES,
                 retry_backoff_seconds: float = RETRY_BACKOFF_SECONDS,
                 page_size: int = 0):
        if connection_retries < 0:
            raise ValueError("connection_retries cannot be less than 0")
        self.connector = connector or RequestsConnector()
        self.rate_limit_tracker = rate_limit_tracker or RateLimitTracker()
        self.api_url = api_url
        self.rate_limit_handler = rate_limit_handler
        self.abuse_limit_handler = abuse_limit_handler
        self.rate_limit_checker = rate_limit_checker
        self.connection_retries = connection_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.page_size = page_size
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: 'ClientConfig',
                    rate_limit_tracker: Optional[RateLimitTracker] = None) -> 'HTTPClient':
        """
        Wire a client from loaded configuration

        Args:
            config: ClientConfig produced by ConfigLoader
            rate_limit_tracker: Tracker to share with other clients, if any

        Returns:
            Configured HTTPClient
        """
        from github_adapter.config_loader import ConfigLoader

        if config.cache.get('enabled', False):
            connector = CachingConnector(
                cache_name=config.cache.get('cache_name', 'github_cache'),
                expire_after=config.cache.get('expire_after', 3600),
                timeout=config.timeout,
                user_agent=config.user_agent
            )
        else:
            connector = RequestsConnector(timeout=config.timeout, user_agent=config.user_agent)

        token = ConfigLoader.resolve_token(config)
        if token:
            connector.authenticate({'type': 'token', 'token': token})

        return cls(
            connector=connector,
            rate_limit_tracker=rate_limit_tracker,
            api_url=config.base_url,
            rate_limit_handler=ConfigLoader.resolve_rate_limit_handler(config),
            abuse_limit_handler=ConfigLoader.resolve_abuse_limit_handler(config),
            rate_limit_checker=ConfigLoader.resolve_rate_limit_checker(config),
            connection_retries=config.retries.get('connection_retries', cls.CONNECTION_ERROR_RETRIES),
            retry_backoff_seconds=config.retries.get('backoff_seconds', cls.RETRY_BACKOFF_SECONDS),
            page_size=config.pagination.get('page_size', 0)
        )

    def create_request(self) -> RequestBuilder:
        """Builder bound to this client's API base URL"""
        return RequestBuilder().api_url(self.api_url)

    def send_request(self, request: APIRequest,
                     body_handler: Optional[Callable[[ConnectorResponse], Any]] = None) -> APIResponse:
        """
        Send a request, retrying and classifying failures

        Connection errors are retried a bounded number of times after a short
        sleep. A 404 that looks like a corrupted cache entry is resent once with
        caching disabled. Exhausted quotas and abuse limits are handed to their
        policies, which either wait (and the request is resent) or raise.

        Args:
            request: Request to send
            body_handler: Converts the successful raw response into a body

        Returns:
            APIResponse carrying the handled body

        Raises:
            PermanentAPIError: If connection retries are exhausted or a policy gives up
            OTPRequiredError: If a two-factor one-time password is required
            NotFoundError: If the resource does not exist
            HttpException: For any other error response
        """
        retries = self.connection_retries

        while True:
            self._check_rate_limit(request)

            try:
                connector_response = self.connector.send(request)
            except CONNECTION_ERRORS as e:
                if retries > 0:
                    self.logger.info(
                        f"{e} while connecting to {request.url}. Sleeping {self.retry_backoff_seconds} "
                        f"seconds before retrying... ; will try {retries} more time(s)"
                    )
                    time.sleep(self.retry_backoff_seconds)
                    retries -= 1
                    continue
                raise PermanentAPIError(
                    f"Failed after {self.connection_retries} retry attempts. Last error: {e}",
                    url=request.url
                ) from e

            self._note_rate_limit(request, connector_response)

            if self._is_invalid_cached_404(request, connector_response):
                self.logger.debug(
                    f"Encountered GitHub invalid cached 404 from {request.url}. "
                    f"Retrying with \"Cache-Control\"=\"no-cache\"..."
                )
                request = request.to_builder().with_header('Cache-Control', 'no-cache').build()
                continue

            if connector_response.status_code < 400:
                body = body_handler(connector_response) if body_handler is not None else None
                return APIResponse.from_connector(connector_response, body)

            self._handle_api_error(request, connector_response)

            # A policy waited; start the attempt over with a fresh retry budget
            retries = self.connection_retries

    def send(self, request: APIRequest) -> None:
        self.send_request(request)

    def fetch(self, request: APIRequest, factory: Optional[Callable[[Any], Any]] = None) -> Any:
        """Send the request and return its decoded JSON body"""
        return self.send_request(request, lambda response: parse_json_body(response, factory)).body

    def fetch_response(self, request: APIRequest,
                       factory: Optional[Callable[[Any], Any]] = None) -> APIResponse:
        return self.send_request(request, lambda response: parse_json_body(response, factory))

    def fetch_stream(self, request: APIRequest) -> BinaryIO:
        return self.send_request(request, lambda response: response.body_stream()).body

    def fetch_http_status_code(self, request: APIRequest) -> int:
        """
        Status code of the request, error statuses included

        The request goes through the same retry loop as any other, so an
        exhausted quota or an abuse limit blocks for as long as the configured
        policy waits, and the status returned is that of the resent request.

        Raises:
            PermanentAPIError: If the request could not be sent at all
        """
        try:
            return self.send_request(request).status_code
        except PermanentAPIError:
            raise
        except HttpException as e:
            return e.status_code

    def paginate(self, request: APIRequest, item_factory: Optional[Callable[[Any], Any]] = None,
                 item_initializer: Optional[Callable[[Any], None]] = None) -> PaginatedEndpoint:
        """Paginated view of an endpoint returning a bare JSON array"""
        return PaginatedEndpoint(
            self, request, ArrayPage.from_json, item_factory, item_initializer
        ).with_page_size(self.page_size)

    def search(self, request: APIRequest, item_factory: Optional[Callable[[Any], Any]] = None,
               item_initializer: Optional[Callable[[Any], None]] = None) -> PaginatedEndpoint:
        """Paginated view of a search endpoint (items plus total_count metadata)"""
        if request.rate_limit_target == RateLimitTarget.CORE:
            request = request.to_builder().rate_limit_target(RateLimitTarget.SEARCH).build()
        return PaginatedEndpoint(
            self, request, SearchResultPage.from_json, item_factory, item_initializer
        ).with_page_size(self.page_size)

    def fetch_array(self, request: APIRequest,
                    item_factory: Optional[Callable[[Any], Any]] = None) -> List[Any]:
        """Walk every page of an array endpoint and concatenate the items"""
        return self.paginate(request, item_factory).to_list()

    def get_rate_limit(self) -> RateLimit:
        """
        Fetch the current quota of every bucket from ``GET /rate_limit``

        The call itself does not count against any bucket.

        Returns:
            RateLimit snapshot, also stored in the tracker
        """
        request = (self.create_request()
                   .with_url_path('/rate_limit')
                   .rate_limit_target(RateLimitTarget.NONE)
                   .build())
        response = self.send_request(request, lambda r: parse_json_body(r))
        rate_limit = RateLimit.from_json(response.body or {}, response.header('Date'))
        self.rate_limit_tracker.update_from(rate_limit)
        return rate_limit

    def rate_limit(self) -> RateLimit:
        """Tracked quota, refreshed from the server when core is unknown or expired"""
        snapshot = self.rate_limit_tracker.snapshot()
        if snapshot.core.is_unknown or snapshot.core.is_expired():
            return self.get_rate_limit()
        return snapshot

    def last_rate_limit(self) -> RateLimit:
        return self.rate_limit_tracker.snapshot()

    def _effective_target(self, request: APIRequest) -> RateLimitTarget:
        # Search requests count against their own bucket, never core
        if request.rate_limit_target == RateLimitTarget.CORE and request.tail_url.startswith('/search'):
            return RateLimitTarget.SEARCH
        return request.rate_limit_target

    def _check_rate_limit(self, request: APIRequest) -> None:
        target = self._effective_target(request)
        if target == RateLimitTarget.NONE:
            return
        self.rate_limit_checker.check_rate_limit(self.rate_limit_tracker.current(target))

    def _note_rate_limit(self, request: APIRequest, response: ConnectorResponse) -> None:
        """
        Record the quota headers of a response in the tracker

        Responses missing any of the three headers, or carrying non-integer
        values, leave the tracker untouched.
        """
        target = self._effective_target(request)
        if target == RateLimitTarget.NONE:
            return

        values = []
        for header_name in ('X-RateLimit-Limit', 'X-RateLimit-Remaining', 'X-RateLimit-Reset'):
            value = response.header(header_name)
            if value is None or not value.strip():
                return
            try:
                values.append(int(value))
            except ValueError:
                self.logger.debug(f"Malformed {header_name} header value {value}")
                return

        limit, remaining, reset = values
        self.rate_limit_tracker.observe(target, limit, remaining, reset, response.header('Date'))

    def _is_invalid_cached_404(self, request: APIRequest, response: ConnectorResponse) -> bool:
        # A 404 carrying an ETag only happens when a bogus 304 would corrupt the cache
        return (
            response.status_code == 404
            and request.method == 'GET'
            and response.header('ETag') is not None
            and request.header('Cache-Control') != 'no-cache'
        )

    def _build_error(self, request: APIRequest, response: ConnectorResponse) -> HttpException:
        body = response.text()
        message = response.reason or f"HTTP {response.status_code}"
        try:
            decoded = json.loads(body) if body else None
        except ValueError:
            decoded = None
        if isinstance(decoded, dict) and decoded.get('message'):
            message = decoded['message']

        error_class = NotFoundError if response.status_code == 404 else HttpException
        return error_class(
            message,
            status_code=response.status_code,
            reason=response.reason,
            url=response.url or request.url,
            body=body,
            headers=dict(response.headers)
        )

    def _handle_api_error(self, request: APIRequest, response: ConnectorResponse) -> None:
        """
        Classify an error response

        Returns only when a rate limit or abuse policy decided to wait, meaning
        the request should be sent again.
        """
        error = self._build_error(request, response)
        status_code = response.status_code

        # 401 is either bad credentials or a one-time password challenge
        if status_code == 401 and response.header('X-GitHub-OTP') is not None:
            raise OTPRequiredError(
                "Two-factor one-time password required",
                status_code=status_code,
                reason=response.reason,
                url=error.url,
                body=error.body,
                headers=error.headers
            ) from error

        # Bad credentials stay bad after a wait
        if status_code == 401:
            raise error

        if response.header('X-RateLimit-Remaining') == '0':
            self.rate_limit_handler.on_error(error, response)
            return

        if status_code == 403 and response.header('Retry-After') is not None:
            self.abuse_limit_handler.on_error(error, response)
            return

        raise error
