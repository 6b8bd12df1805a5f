"""
Connector module: the narrow "send one HTTP request" transport contract
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Protocol

import requests
import requests_cache
from requests.structures import CaseInsensitiveDict

from github_adapter.request import APIRequest


# Transport failures that are worth retrying on a fresh connection
CONNECTION_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
    ConnectionError,
    TimeoutError,
)


def _header_multimap(headers: Optional[Mapping[str, Any]]) -> CaseInsensitiveDict:
    multimap = CaseInsensitiveDict()
    for name, value in (headers or {}).items():
        if isinstance(value, (list, tuple)):
            multimap[name] = [str(v) for v in value]
        else:
            multimap[name] = [str(value)]
    return multimap


@dataclass
class ConnectorResponse:
    """Status, headers and body of one HTTP round trip"""
    status_code: int
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    url: str = ""
    reason: Optional[str] = None
    content: bytes = b""

    def __post_init__(self):
        # Every value is a list, whatever mapping the connector handed in
        self.headers = _header_multimap(self.headers)

    @classmethod
    def from_requests(cls, response: requests.Response) -> 'ConnectorResponse':
        return cls(
            status_code=response.status_code,
            headers=response.headers,
            url=response.url,
            reason=response.reason,
            content=response.content or b""
        )

    def header(self, name: str) -> Optional[str]:
        values = self.headers.get(name)
        return values[0] if values else None

    def body_stream(self) -> BinaryIO:
        return io.BytesIO(self.content)

    def text(self) -> str:
        return self.content.decode('utf-8', errors='replace')


class Connector(Protocol):
    """Transport contract consumed by HTTPClient"""

    def send(self, request: APIRequest) -> ConnectorResponse:
        """Send the request once and return the raw response"""
        ...


class RequestsConnector:
    """Connector backed by a requests Session; accepts any method string"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0,
                 user_agent: Optional[str] = None):
        self.session = session
        self.timeout = timeout
        self.headers: Dict[str, str] = {}
        if user_agent:
            self.headers['User-Agent'] = user_agent
        self.logger = logging.getLogger(__name__)

    def authenticate(self, credentials: Dict[str, Any]) -> None:
        """
        Configure the Authorization header based on credential type

        Args:
            credentials: Dictionary containing authentication information

        Raises:
            ValueError: If authentication type is not supported
        """
        auth_type = credentials.get('type')

        if auth_type == 'token':
            self.headers['Authorization'] = f"token {credentials['token']}"

        elif auth_type == 'bearer_token':
            self.headers['Authorization'] = f"Bearer {credentials['token']}"

        else:
            raise ValueError(f"Unsupported authentication type: {auth_type}")

    def _create_session(self) -> requests.Session:
        return requests.Session()

    def send(self, request: APIRequest) -> ConnectorResponse:
        if self.session is None:
            self.session = self._create_session()

        headers = {**self.headers, **request.header_dict()}
        data = request.body_bytes()
        if data is not None and not request.header('Content-Type'):
            headers['Content-Type'] = request.body_content_type()

        self.logger.debug(f"GitHub API request: {request.method} {request.url}")
        response = self.session.request(
            request.method,
            request.url,
            headers=headers,
            data=data,
            timeout=self.timeout
        )
        return ConnectorResponse.from_requests(response)

    def close_connection(self) -> None:
        """
        Close HTTP session and release resources
        """
        if self.session:
            self.session.close()
            self.session = None


class CachingConnector(RequestsConnector):
    """
    Connector backed by a requests_cache CachedSession

    Conditional requests (ETag / Last-Modified) are handled by the cache; a
    request carrying ``Cache-Control: no-cache`` bypasses stored entries.
    """

    def __init__(self, cache_name: str = "github_cache", expire_after: int = 3600,
                 backend: str = "sqlite", timeout: float = 30.0, user_agent: Optional[str] = None):
        super().__init__(timeout=timeout, user_agent=user_agent)
        self.cache_name = cache_name
        self.expire_after = expire_after
        self.backend = backend

    def _create_session(self) -> requests.Session:
        self.logger.info(f"Request caching enabled with expiration of {self.expire_after} seconds")
        return requests_cache.CachedSession(
            self.cache_name,
            backend=self.backend,
            expire_after=self.expire_after,
            cache_control=True
        )

    def clear_cache(self) -> None:
        if self.session is not None:
            self.session.cache.clear()
