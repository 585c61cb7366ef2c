"""
Builds the outbound response from an upstream response and its (possibly
rewritten) body.
"""

import logging
import re
from typing import Optional, Union

import httpx
from fastapi.responses import Response

from hmproxy.models import ProxyContext, RewriteMode, UpstreamResponse
from hmproxy.rewrite import rewrite_location_header

logger = logging.getLogger("uvicorn.error")

# Content-Length is recomputed for the new body; Content-Encoding is dropped
# because origins are always asked for an uncompressed body.
EXCLUDED_RESPONSE_HEADERS = {
    "connection",
    "transfer-encoding",
    "content-encoding",
    "content-length",
    "x-frame-options",
    "content-security-policy",
}

CLASSIC_CSP = "frame-ancestors *"
SPA_CSP = "default-src * 'unsafe-inline' 'unsafe-eval' data: blob:; frame-ancestors *"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
OVERRIDDEN_HEADERS = {name.lower() for name in NO_CACHE_HEADERS}

SPA_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}

_CHARSET = re.compile(r"charset\s*=\s*[\"']?[^;\"'\s]+[\"']?", re.IGNORECASE)


def utf8_content_type(content_type: str) -> str:
    """Rewritten text is always re-encoded as UTF-8; say so in the header."""
    if not content_type:
        return content_type
    if _CHARSET.search(content_type):
        return _CHARSET.sub("charset=utf-8", content_type)
    return f"{content_type}; charset=utf-8"


def assemble_headers(
    headers: httpx.Headers,
    ctx: ProxyContext,
    request_path: str = "/",
    content_type: Optional[str] = None,
) -> list[tuple[str, str]]:
    """Upstream headers filtered, with the proxy's policy headers applied."""
    result: list[tuple[str, str]] = []
    for name, value in headers.multi_items():
        lower = name.lower()
        if lower in EXCLUDED_RESPONSE_HEADERS or lower in OVERRIDDEN_HEADERS:
            continue
        if lower == "content-type" and content_type is not None:
            value = content_type
        elif lower == "location":
            value = rewrite_location_header(value, ctx, request_path)
        elif ctx.target.mode == RewriteMode.SPA and lower.startswith("access-control-"):
            continue
        result.append((name, value))

    if ctx.target.mode == RewriteMode.SPA:
        result.append(("Content-Security-Policy", SPA_CSP))
        result.extend(SPA_CORS_HEADERS.items())
    else:
        result.append(("Content-Security-Policy", CLASSIC_CSP))

    result.extend(NO_CACHE_HEADERS.items())
    return result


def assemble_response(
    upstream: UpstreamResponse,
    ctx: ProxyContext,
    body: Union[str, bytes, None] = None,
    request_path: str = "/",
) -> Response:
    """
    Produce the client response. ``body`` is the rewritten text when a
    rewrite pass ran; otherwise the upstream bytes go out untouched.
    """
    content_type = None
    if isinstance(body, str):
        content = body.encode("utf-8")
        content_type = utf8_content_type(upstream.content_type)
    elif body is not None:
        content = body
    else:
        content = upstream.body

    response = Response(content=content, status_code=upstream.status)
    for name, value in assemble_headers(upstream.headers, ctx, request_path, content_type):
        response.headers.append(name, value)
    return response
