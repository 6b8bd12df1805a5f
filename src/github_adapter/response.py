"""
APIResponse wrapper and body parsing for GitHub API responses
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

from requests.structures import CaseInsensitiveDict

from github_adapter.connector import ConnectorResponse
from github_adapter.exceptions import GitHubAPIError


logger = logging.getLogger(__name__)

T = TypeVar('T')
U = TypeVar('U')


@dataclass(frozen=True)
class APIResponse(Generic[T]):
    """Standardised API response wrapper: status, headers and typed body"""
    status_code: int
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    url: str = ""
    body: Optional[T] = None

    @classmethod
    def from_connector(cls, connector_response: ConnectorResponse, body: Optional[T] = None) -> 'APIResponse[T]':
        return cls(
            status_code=connector_response.status_code,
            headers=connector_response.headers.copy(),
            url=connector_response.url,
            body=body
        )

    @classmethod
    def with_body(cls, response: 'APIResponse[Any]', body: Optional[U]) -> 'APIResponse[U]':
        """Copy status, headers and URL of another response around a new body"""
        return cls(status_code=response.status_code, headers=response.headers, url=response.url, body=body)

    def header(self, name: str) -> Optional[str]:
        values = self.headers.get(name)
        return values[0] if values else None


def parse_json_body(connector_response: ConnectorResponse,
                    factory: Optional[Callable[[Any], Any]] = None,
                    expect_list: bool = False) -> Any:
    """
    Decode a JSON response body

    Args:
        connector_response: Raw response from the connector
        factory: Optional callable applied to the decoded JSON
        expect_list: Whether the caller wants a list (204 then yields [])

    Returns:
        The decoded (and converted) body, or None for 304/202/empty bodies

    Raises:
        GitHubAPIError: If the body is not valid JSON
    """
    status_code = connector_response.status_code
    if status_code == 304:
        return None
    if status_code == 204:
        return [] if expect_list else None

    # 202 means the data is still being generated (statistics, fork creation)
    if status_code == 202:
        url = connector_response.url
        if url.endswith('/forks'):
            logger.info("The fork is being created. Please try again in 5 seconds.")
        elif url.endswith('/statistics'):
            logger.info("The statistics are being generated. Please try again in 5 seconds.")
        else:
            logger.info(f"Received 202 from {url} . Please try again in 5 seconds.")
        return None

    data = connector_response.text()
    if not data.strip():
        return [] if expect_list else None

    try:
        decoded = json.loads(data)
    except ValueError as e:
        raise GitHubAPIError(f"Failed to deserialize {data}", connector_response.headers) from e

    return factory(decoded) if factory is not None else decoded
