"""
Errors raised by the proxy pipeline.

Only the route handlers translate these into HTTP responses; the rewrite
engine never raises them.
"""

from typing import Optional


class ProxyError(Exception):
    """Base class for proxy pipeline failures."""


class NoTargetSpecified(ProxyError):
    def __init__(self, message: str = "No target specified"):
        super().__init__(message)


class RequestRateLimited(ProxyError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Request rate limited: {key}")


class UpstreamFetchError(ProxyError):
    """An origin fetch that could not produce a final response."""

    def __init__(self, message: str, url_chain: Optional[list[str]] = None):
        self.url_chain = list(url_chain or [])
        super().__init__(message)


class TooManyRedirects(UpstreamFetchError):
    def __init__(self, url_chain: list[str]):
        super().__init__("Too many redirects", url_chain)


class MaxRetriesExceeded(UpstreamFetchError):
    def __init__(self, url_chain: list[str], last_error: Optional[BaseException] = None):
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Maximum retries exceeded{detail}", url_chain)
