"""
Narrow rewrite pass for commerce cart JSON.

Only two shapes are touched: ``"url": "/path"`` fields, which get the marker
appended, and absolute URLs on a configured CDN host, which are routed back
through the proxy.
"""

import logging
import re
from re import Match
from typing import Iterable, Optional
from urllib.parse import urlsplit

from hmproxy.models import ProxyContext
from hmproxy.rewrite import urls
from hmproxy.vars import ASSET_PATH, CART_CDN_HOSTS

logger = logging.getLogger("uvicorn.error")

URL_FIELD = re.compile(r"(?P<prefix>\"url\"\s*:\s*\")(?P<url>/(?!/)[^\"]*)(?P<suffix>\")")


def _cdn_pattern(hosts: Iterable[str]) -> Optional[re.Pattern]:
    hosts = [h for h in hosts if h]
    if not hosts:
        return None
    alternation = "|".join(re.escape(h) for h in hosts)
    return re.compile(rf"(?P<url>https?://(?:{alternation})(?:[/?#][^\"\s]*)?)(?=\")", re.IGNORECASE)


def _proxied_cdn_url(url: str, ctx: ProxyContext, asset_path: str) -> str:
    try:
        parts = urlsplit(url)
        path = parts.path or "/"
        query = f"?{parts.query}" if parts.query else ""
        fragment = f"#{parts.fragment}" if parts.fragment else ""
        return f"{ctx.proxy_origin}{urls.append_marker(path + query + fragment, ctx.marker(parts.netloc))}"
    except ValueError:
        return urls.asset_url(url, ctx, asset_path)


def rewrite_cart_json(
    text: str,
    ctx: ProxyContext,
    cdn_hosts: Iterable[str] = CART_CDN_HOSTS,
    asset_path: str = ASSET_PATH,
) -> str:
    def url_field(m: Match) -> str:
        url = m.group("url")
        if urls.is_marked(url):
            return m.group(0)
        return f"{m.group('prefix')}{urls.append_marker(url, ctx.marker())}{m.group('suffix')}"

    def cdn_url(m: Match) -> str:
        url = m.group("url")
        if urls.is_marked(url):
            return url
        return _proxied_cdn_url(url, ctx, asset_path)

    try:
        text = URL_FIELD.sub(url_field, text)
        pattern = _cdn_pattern(cdn_hosts)
        if pattern is not None:
            text = pattern.sub(cdn_url, text)
    except Exception as e:
        logger.warning(f"[Rewrite] Cart JSON rewrite failed, passing body through: {e!r}")
    return text
