import asyncio
import codecs
import logging
from typing import Mapping, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from opentelemetry import trace

from hmproxy.errors import MaxRetriesExceeded, TooManyRedirects
from hmproxy.fetcher.headers import BODY_METHODS, clean_request_headers
from hmproxy.guards import RequestTracker
from hmproxy.models import UpstreamResponse
from hmproxy.vars import (
    FETCH_TIMEOUT,
    MAX_REDIRECTS,
    MAX_RETRIES,
    RETRY_BACKOFF_SECONDS,
)

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

# Stripped from upstream responses: the body returned here is always decoded
DROPPED_RESPONSE_HEADERS = {"content-encoding", "content-length"}

TEXTUAL_CONTENT_TYPES = ("text/", "application/json", "application/javascript")


def is_textual(content_type: str) -> bool:
    content_type = (content_type or "").lower()
    return any(marker in content_type for marker in TEXTUAL_CONTENT_TYPES)


def _charset(content_type: str) -> str:
    for part in (content_type or "").split(";")[1:]:
        key, _, value = part.strip().partition("=")
        if key.lower() == "charset" and value:
            charset = value.strip("\"' ")
            try:
                codecs.lookup(charset)
                return charset
            except LookupError:
                break
    return "utf-8"


class OriginFetcher:
    """
    Fetch a URL from an origin, resolving redirects and transient failures.

    Redirects are followed here, never by the HTTP client, so callers only ever
    see the final non-redirect response. Transport failures (including
    timeouts) are retried with linear backoff.
    """

    def __init__(
        self,
        max_redirects: int = MAX_REDIRECTS,
        max_retries: int = MAX_RETRIES,
        timeout: float = FETCH_TIMEOUT,
        backoff: float = RETRY_BACKOFF_SECONDS,
        tracker: Optional[RequestTracker] = None,
    ):
        self.max_redirects = max_redirects
        self.max_retries = max_retries
        self.timeout = timeout
        self.backoff = backoff
        self.tracker = tracker

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> UpstreamResponse:
        method = method.upper()
        if self.tracker is not None:
            self.tracker.check(f"{method}:{url}")

        request_headers = clean_request_headers(headers)
        content = body if body and method in BODY_METHODS else None

        current_url = url
        url_chain = [url]
        redirects = 0
        attempts = 0

        with tracer.start_as_current_span("origin_fetch") as span:
            span.set_attribute("fetch.url", url)
            span.set_attribute("fetch.method", method)

            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
            ) as client:
                while True:
                    logger.debug(f"[OriginFetcher] {method} {current_url}")
                    try:
                        response = await client.request(
                            method=method,
                            url=current_url,
                            headers=request_headers,
                            content=content,
                        )
                    except httpx.TransportError as e:
                        attempts += 1
                        logger.warning(
                            f"[OriginFetcher] Attempt {attempts} for {current_url} failed: {e!r}"
                        )
                        if attempts >= self.max_retries:
                            span.set_attribute("fetch.error", "max_retries")
                            raise MaxRetriesExceeded(url_chain, e) from e
                        await asyncio.sleep(self.backoff * attempts)
                        continue

                    location = response.headers.get("location")
                    if 300 <= response.status_code < 400 and location:
                        redirects += 1
                        if redirects > self.max_redirects:
                            span.set_attribute("fetch.error", "too_many_redirects")
                            raise TooManyRedirects(url_chain)

                        next_url = urljoin(current_url, location)
                        self._warn_cross_host(current_url, next_url)
                        current_url = next_url
                        url_chain.append(current_url)
                        if "Host" in request_headers:
                            request_headers["Host"] = urlsplit(current_url).netloc
                        if response.status_code == 303:
                            method, content = "GET", None
                        continue

                    span.set_attribute("fetch.redirects", redirects)
                    span.set_attribute("fetch.attempts", attempts + 1)
                    span.set_attribute("fetch.status_code", response.status_code)
                    return self._to_upstream(response, current_url, url_chain)

    @staticmethod
    def _warn_cross_host(current_url: str, next_url: str) -> None:
        source = urlsplit(current_url).hostname
        destination = urlsplit(next_url).hostname
        if source != destination:
            logger.info(
                f"[OriginFetcher] Cross-domain redirect from {source} to {destination}"
            )

    @staticmethod
    def _to_upstream(
        response: httpx.Response, final_url: str, url_chain: list[str]
    ) -> UpstreamResponse:
        headers = httpx.Headers(
            [
                (name, value)
                for name, value in httpx.Headers(response.headers).multi_items()
                if name.lower() not in DROPPED_RESPONSE_HEADERS
            ]
        )
        body = response.content or b""
        content_type = headers.get("content-type", "")
        text = body.decode(_charset(content_type), errors="replace") if is_textual(content_type) else None
        return UpstreamResponse(
            status=response.status_code,
            headers=headers,
            body=body,
            text=text,
            url=final_url,
            url_chain=url_chain,
        )
