import re
from typing import Union

from hmproxy.fetcher.headers import is_cart_path
from hmproxy.models import ContentKind, UpstreamResponse
from hmproxy.vars import REWRITE_CSS_URLS

# Origins sometimes label HTML as text/plain or leave the type out
HTML_SIGNATURES = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"<!DOCTYPE",
        r"<html",
        r"<head",
        r"<body",
        r"<div",
        r"<script",
        r"<meta",
        r"<title",
        r"<link",
    )
]
SNIFF_LENGTH = 1000

BINARY_PREFIXES = (
    "image/",
    "video/",
    "audio/",
    "application/octet-stream",
    "application/pdf",
    "application/zip",
    "font/",
    "application/font",
)

# Sniffing these would misfire on script and data bodies that embed markup
NON_HTML_TEXT = ("application/json", "javascript", "text/css")


def looks_like_html(body: Union[str, bytes, None]) -> bool:
    if not body:
        return False
    head = body[:SNIFF_LENGTH]
    if isinstance(head, bytes):
        head = head.decode("utf-8", errors="ignore")
    return any(pattern.search(head) for pattern in HTML_SIGNATURES)


def classify(response: UpstreamResponse, request_path: str = "/") -> ContentKind:
    """Decide which rewrite pass, if any, applies to an upstream response."""
    content_type = response.content_type.lower()

    if "text/html" in content_type:
        return ContentKind.HTML

    if content_type.startswith(BINARY_PREFIXES):
        return ContentKind.BINARY

    if not any(marker in content_type for marker in NON_HTML_TEXT):
        if looks_like_html(response.text if response.text is not None else response.body):
            return ContentKind.HTML

    if "application/json" in content_type and is_cart_path(request_path):
        return ContentKind.JSON

    if REWRITE_CSS_URLS and "text/css" in content_type:
        return ContentKind.CSS

    return ContentKind.OTHER
