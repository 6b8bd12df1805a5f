"""
Exception hierarchy for GitHub API failures
"""

from typing import Dict, List, Optional


class GitHubAPIError(Exception):
    """Base class for every failure raised by the adapter"""

    def __init__(self, message: str, headers: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers or {}


class HttpException(GitHubAPIError):
    """Raised for HTTP error responses that are not retried"""

    def __init__(self, message: str, status_code: int = -1, reason: Optional[str] = None,
                 url: Optional[str] = None, body: Optional[str] = None,
                 headers: Optional[Dict[str, List[str]]] = None):
        super().__init__(message, headers)
        self.status_code = status_code
        self.reason = reason
        self.url = url
        self.body = body

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code != -1:
            parts.append(f"status={self.status_code}")
        if self.reason:
            parts.append(f"reason={self.reason}")
        if self.url:
            parts.append(f"url={self.url}")
        return " | ".join(parts)


class NotFoundError(HttpException):
    """Raised when the requested resource does not exist (HTTP 404)"""
    pass


class OTPRequiredError(HttpException):
    """Raised when the account requires a two-factor one-time password"""
    pass


class PermanentAPIError(HttpException):
    """Raised when a request fails permanently: retries exhausted or a limit policy gave up"""
    pass


class PaginationStateError(GitHubAPIError):
    """Raised when a page iterator is used out of order"""
    pass
