"""
Shared test doubles for the adapter test suites
"""

import json
from typing import Any, Dict, List, Optional, Union

from github_adapter.connector import ConnectorResponse
from github_adapter.request import APIRequest


def make_response(status_code: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None,
                  url: str = "https://api.github.com/", reason: Optional[str] = None) -> ConnectorResponse:
    """Build a ConnectorResponse with a JSON (or raw bytes) body"""
    if body is None:
        content = b""
    elif isinstance(body, bytes):
        content = body
    else:
        content = json.dumps(body).encode('utf-8')
    return ConnectorResponse(
        status_code=status_code,
        headers=headers or {},
        url=url,
        reason=reason,
        content=content
    )


class ReplayConnector:
    """Connector that replays scripted responses and records every request sent"""

    def __init__(self, *script: Union[ConnectorResponse, Exception]):
        self.script: List[Union[ConnectorResponse, Exception]] = list(script)
        self.requests: List[APIRequest] = []

    def send(self, request: APIRequest) -> ConnectorResponse:
        self.requests.append(request)
        if not self.script:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        outcome = self.script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
