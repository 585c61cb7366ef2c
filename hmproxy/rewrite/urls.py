"""
Single-URL rewriting shared by the body rules, the Location header and the
cart JSON pass.

A rewritten URL points at the proxy and carries the origin host in the
``hmtarget``/``hmtype`` marker. A URL that already carries the marker, or
that already points at the proxy host, is returned unchanged.
"""

import re
from typing import Optional
from urllib.parse import quote, urljoin, urlsplit

from hmproxy.models import MARKER_TOKEN, TARGET_PARAM, TYPE_PARAM, URL_PARAM, ProxyContext

SKIPPED_PREFIXES = ("data:", "blob:", "#", "javascript:", "mailto:", "tel:", "about:")

_ABSOLUTE = re.compile(r"^(?P<scheme>https?):(?=//)", re.IGNORECASE)


def is_marked(url: str) -> bool:
    return MARKER_TOKEN in url


def is_skipped(url: str) -> bool:
    return not url or url.strip().lower().startswith(SKIPPED_PREFIXES)


def append_marker(path_and_query: str, marker: str) -> str:
    """Append the marker before any fragment, joining with ``&`` or ``?``."""
    path, hash_sign, fragment = path_and_query.partition("#")
    if not path.startswith("/"):
        path = "/" + path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{marker}{hash_sign}{fragment}"


def split_host(rest: str) -> tuple[str, str]:
    """Split ``host/path?query`` (no scheme, no leading slashes) into host and remainder."""
    match = re.match(r"(?P<host>[^/?#]*)(?P<rest>.*)", rest, re.DOTALL)
    return match.group("host"), match.group("rest")


def is_proxy_host(host: str, ctx: ProxyContext) -> bool:
    return host.lower() == ctx.proxy_host.lower()


def protocol_relative(host: str, rest: str, ctx: ProxyContext) -> Optional[str]:
    if not host or is_proxy_host(host, ctx):
        return None
    return f"//{ctx.proxy_host}{append_marker(rest, ctx.marker(host))}"


def absolute(host: str, rest: str, ctx: ProxyContext) -> Optional[str]:
    if not host or is_proxy_host(host, ctx):
        return None
    return f"{ctx.proxy_origin}{append_marker(rest, ctx.marker(host))}"


def root_relative(path: str, ctx: ProxyContext) -> str:
    return f"{ctx.proxy_origin}{append_marker(path, ctx.marker())}"


def asset_url(url: str, ctx: ProxyContext, asset_path: str = "/asset") -> str:
    """Route an arbitrary URL through the asset endpoint using ``hmurl``."""
    return (
        f"{ctx.proxy_origin}{asset_path}?{TARGET_PARAM}={ctx.target.host}"
        f"&{TYPE_PARAM}={ctx.mode}&{URL_PARAM}={quote(url, safe='')}"
    )


def rewrite_url(url: str, ctx: ProxyContext, base_path: Optional[str] = None) -> str:
    """
    Rewrite one URL of any supported shape.

    Protocol-relative, absolute http(s) and root-relative URLs are always
    handled; document-relative URLs only when ``base_path`` is given.
    Anything else comes back unchanged.
    """
    if is_skipped(url) or is_marked(url):
        return url

    if url.startswith("//"):
        host, rest = split_host(url[2:])
        return protocol_relative(host, rest, ctx) or url

    match = _ABSOLUTE.match(url)
    if match:
        host, rest = split_host(url[match.end() + 2:])
        return absolute(host, rest, ctx) or url

    if url.startswith("/"):
        return root_relative(url, ctx)

    if base_path is not None:
        return root_relative(urljoin(base_path, url), ctx)

    return url


def host_of(url: str) -> str:
    try:
        return urlsplit(url).netloc
    except ValueError:
        return ""
