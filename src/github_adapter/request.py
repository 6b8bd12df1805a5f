"""
Immutable GitHub API request description and its fluent builder
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, urlencode

from github_adapter.rate_limit_tracker import RateLimitTarget


DEFAULT_API_URL = "https://api.github.com"

METHODS_WITHOUT_BODY = ("GET", "DELETE")

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def url_path_encode(value: str) -> str:
    """Percent-encode a URL path, keeping separators and sub-delimiters intact"""
    return quote(value, safe="/:@!$&'()*+,;=")


def transform_enum(value: Enum) -> str:
    """GitHub expects lower-case constants with '-' where Python names use '_'"""
    return value.name.lower().replace('_', '-')


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, tuple, set)):
        return ','.join(_query_value(item) for item in value)
    return str(value)


@dataclass(frozen=True)
class APIRequest:
    """Represents a single GitHub API request"""
    method: str = "GET"
    url_path: str = "/"
    raw_url: bool = False
    args: Tuple[Tuple[str, Any], ...] = ()
    headers: Tuple[Tuple[str, str], ...] = ()
    rate_limit_target: RateLimitTarget = RateLimitTarget.CORE
    force_body: bool = False
    body: Optional[bytes] = None
    content_type: Optional[str] = None
    api_url: str = DEFAULT_API_URL

    @staticmethod
    def builder() -> 'RequestBuilder':
        return RequestBuilder()

    def to_builder(self) -> 'RequestBuilder':
        return RequestBuilder(self)

    @property
    def has_body(self) -> bool:
        return self.force_body or self.method not in METHODS_WITHOUT_BODY

    @property
    def url(self) -> str:
        """
        Final URL of the request

        Raw URLs are used verbatim; rooted paths are joined to the API base URL.
        Arguments become the query string only for requests without a body.
        """
        if self.raw_url:
            url = self.url_path
        else:
            url = self.api_url.rstrip('/') + self.url_path

        if not self.has_body and self.args:
            separator = '&' if '?' in url else '?'
            url += separator + urlencode([(key, _query_value(value)) for key, value in self.args])
        return url

    @property
    def tail_url(self) -> str:
        """URL relative to the API base, used to classify search requests"""
        url = self.url
        base = self.api_url.rstrip('/')
        if url.startswith(base):
            return url[len(base):]
        return url

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for header_name, value in self.headers:
            if header_name.lower() == lowered:
                return value
        return None

    def header_dict(self) -> Dict[str, str]:
        return dict(self.headers)

    def body_content_type(self) -> Optional[str]:
        if not self.has_body:
            return None
        if self.content_type:
            return self.content_type
        return JSON_CONTENT_TYPE if self.body is None else FORM_CONTENT_TYPE

    def body_bytes(self) -> Optional[bytes]:
        """
        Serialise the request body

        Returns:
            JSON object of the arguments, the raw body verbatim, or None for
            requests sent without a body
        """
        if not self.has_body:
            return None
        if self.body is None:
            return json.dumps(dict(self.args)).encode('utf-8')
        return self.body


class RequestBuilder:
    """Accumulates request fields; build() snapshots them into an APIRequest"""

    def __init__(self, request: Optional[APIRequest] = None):
        request = request or APIRequest()
        self._method = request.method
        self._url_path = request.url_path
        self._raw_url = request.raw_url
        self._args: List[Tuple[str, Any]] = list(request.args)
        self._headers: Dict[str, Tuple[str, Optional[str]]] = {
            name.lower(): (name, value) for name, value in request.headers
        }
        self._rate_limit_target = request.rate_limit_target
        self._force_body = request.force_body
        self._body = request.body
        self._content_type = request.content_type
        self._api_url = request.api_url

    def method(self, method: str) -> 'RequestBuilder':
        self._method = method.upper()
        return self

    def api_url(self, api_url: str) -> 'RequestBuilder':
        self._api_url = api_url
        return self

    def with_header(self, name: str, value: Optional[str]) -> 'RequestBuilder':
        """Set a header; names are case-insensitive and the last write wins"""
        self._headers[name.lower()] = (name, value)
        return self

    set_header = with_header

    def with_preview(self, media_type: str) -> 'RequestBuilder':
        return self.with_header("Accept", media_type)

    def content_type(self, content_type: str) -> 'RequestBuilder':
        self._content_type = content_type
        return self

    def in_body(self) -> 'RequestBuilder':
        """Send the arguments as a body even for GET/DELETE"""
        self._force_body = True
        return self

    def with_body(self, body: Union[bytes, BinaryIO]) -> 'RequestBuilder':
        """Raw body; a stream is read once so every resend carries the same bytes"""
        if not isinstance(body, (bytes, bytearray)):
            body = body.read()
        self._body = bytes(body)
        return self

    def with_(self, key: str, value: Any) -> 'RequestBuilder':
        """Append an argument unless its value is None"""
        if value is not None:
            self.with_nullable(key, value)
        return self

    def with_nullable(self, key: str, value: Any) -> 'RequestBuilder':
        if isinstance(value, Enum):
            value = transform_enum(value)
        self._args.append((key, value))
        return self

    def set(self, key: str, value: Any) -> 'RequestBuilder':
        """Replace the first argument with this key in place, or append it"""
        if isinstance(value, Enum):
            value = transform_enum(value)
        for index, (existing_key, _) in enumerate(self._args):
            if existing_key == key:
                self._args[index] = (key, value)
                return self
        return self.with_(key, value)

    def without_args(self) -> 'RequestBuilder':
        self._args = []
        return self

    def rate_limit_target(self, target: RateLimitTarget) -> 'RequestBuilder':
        self._rate_limit_target = target
        return self

    def set_raw_url_path(self, url_or_path: str) -> 'RequestBuilder':
        """
        Replace the path outright

        Args:
            url_or_path: A path rooted at '/', or an absolute URL used verbatim

        Raises:
            ValueError: If url_or_path is empty
        """
        if not url_or_path:
            raise ValueError("url_or_path must not be empty")
        self._url_path = url_or_path
        self._raw_url = not url_or_path.startswith('/')
        return self

    def with_url_path(self, *url_path_items: str) -> 'RequestBuilder':
        """
        Append percent-encoded path segments

        A single segment that does not start with '/' is taken as an absolute
        URL and switches the builder to raw mode.

        Raises:
            ValueError: If the builder already holds a raw URL
        """
        if self._raw_url:
            raise ValueError("Cannot append to url path after setting a raw path")

        if len(url_path_items) == 1 and not url_path_items[0].startswith('/'):
            return self.set_raw_url_path(url_path_items[0])

        tail_url_path = '/'.join(url_path_items)
        if self._url_path.endswith('/'):
            tail_url_path = tail_url_path.lstrip('/')
        elif not tail_url_path.startswith('/'):
            tail_url_path = '/' + tail_url_path

        self._url_path += url_path_encode(tail_url_path)
        return self

    def build(self) -> APIRequest:
        headers = tuple(
            (name, value) for name, value in self._headers.values() if value is not None
        )
        return APIRequest(
            method=self._method,
            url_path=self._url_path,
            raw_url=self._raw_url,
            args=tuple(self._args),
            headers=headers,
            rate_limit_target=self._rate_limit_target,
            force_body=self._force_body,
            body=self._body,
            content_type=self._content_type,
            api_url=self._api_url
        )
