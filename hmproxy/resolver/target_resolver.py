"""
Recovers the origin target from an inbound proxy request.

The proxy query contract is ``hmtarget`` (origin host), ``hmtype`` (rewrite
mode) and ``hmurl`` (fully-qualified asset URL). When ``hmtarget`` is missing
it is recovered from a ``Referer`` pointing back at the proxy itself.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

from hmproxy.errors import NoTargetSpecified
from hmproxy.models import (
    PROXY_PARAMS,
    TARGET_PARAM,
    TYPE_PARAM,
    URL_PARAM,
    RewriteMode,
    Target,
)

logger = logging.getLogger("uvicorn.error")

# hmtype=<digit><payload>...hmtarget= where <payload> was glued onto the mode
# digit by naive client-side concatenation (e.g. "hmtype=1?variant=5&hmtarget=x").
_PAYLOAD_BEFORE_TARGET = re.compile(
    rf"{TYPE_PARAM}=(?P<mode>[0-9])"
    rf"(?P<payload>(?:(?!{TARGET_PARAM}=)[^&])+)"
    rf"(?P<between>.*?)"
    rf"{TARGET_PARAM}="
)
# hmtype=<digit>?<payload> with nothing to relocate it in front of
# (e.g. "hmtarget=x&hmtype=2?variant=5").
_GLUED_QUERY = re.compile(rf"(?P<head>(?:^|[?&]){TYPE_PARAM}=[0-9])\?(?=[^&#])")
_SCHEME_PREFIX = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


@dataclass(frozen=True)
class ResolvedRequest:
    target: Target
    forward_params: list[tuple[str, str]] = field(default_factory=list)

    @property
    def forward_query(self) -> str:
        return urlencode(self.forward_params)


def normalize_query(query: str) -> str:
    """
    Defensive fixup for malformed input: move a payload that was appended
    after the ``hmtype`` digit so that it precedes ``hmtarget``, or split it
    into its own parameters when ``hmtarget`` came first.
    """
    if not query or f"{TYPE_PARAM}=" not in query:
        return query

    normalized = _relocate_payload(query)
    normalized = _GLUED_QUERY.sub(r"\g<head>&", normalized)
    if normalized != query:
        logger.debug(f"[Resolver] Normalized query {query!r} -> {normalized!r}")
    return normalized


def _relocate_payload(query: str) -> str:
    match = _PAYLOAD_BEFORE_TARGET.search(query)
    if not match:
        return query

    payload = match.group("payload").lstrip("?&")
    if not payload:
        return query

    between = match.group("between")
    if not between.endswith("&"):
        between += "&"
    if not between.startswith("&"):
        between = "&" + between

    fixed = f"{TYPE_PARAM}={match.group('mode')}&{payload}{between}{TARGET_PARAM}="
    return query[: match.start()] + fixed + query[match.end():]


def clean_target_host(raw: Optional[str]) -> str:
    """Strip scheme and anything after the host from an ``hmtarget`` value."""
    if not raw:
        return ""
    host = _SCHEME_PREFIX.sub("", raw.strip())
    host = re.split(r"[/?#]", host, maxsplit=1)[0]
    return host.strip()


def _referer_params(referer: Optional[str], proxy_host: str) -> dict[str, str]:
    if not referer:
        return {}
    try:
        parts = urlsplit(referer)
    except ValueError:
        return {}
    if parts.netloc.lower() != proxy_host.lower():
        return {}
    return dict(parse_qsl(normalize_query(parts.query), keep_blank_values=True))


def resolve_target(
    query: str,
    headers: Mapping[str, str],
    proxy_host: str,
) -> ResolvedRequest:
    """
    Resolve the target of a proxy request from its raw query string.

    Raises:
        NoTargetSpecified: when neither the query nor the Referer names a target.
    """
    pairs = parse_qsl(normalize_query(query or ""), keep_blank_values=True)
    params = dict(pairs)

    raw_target = params.get(TARGET_PARAM)
    raw_type = params.get(TYPE_PARAM)

    if not raw_target:
        referer = _referer_params(headers.get("referer"), proxy_host)
        raw_target = referer.get(TARGET_PARAM)
        raw_type = raw_type or referer.get(TYPE_PARAM)
        if raw_target:
            logger.debug(f"[Resolver] Recovered target {raw_target} from Referer")

    host = clean_target_host(raw_target)
    if not host:
        raise NoTargetSpecified()

    target = Target(
        host=host,
        mode=RewriteMode.parse(raw_type),
        asset_url=params.get(URL_PARAM) or None,
    )
    forward = [(k, v) for k, v in pairs if k not in PROXY_PARAMS]
    return ResolvedRequest(target=target, forward_params=forward)


def build_origin_url(
    resolved: ResolvedRequest,
    path: str,
    scheme: str = "https",
    strip_prefix: str = "",
) -> str:
    """Reconstruct the origin URL; ``hmurl`` wins over host+path reconstruction."""
    if resolved.target.asset_url:
        return resolved.target.asset_url

    if strip_prefix and path.startswith(strip_prefix):
        path = path[len(strip_prefix):]
    if not path.startswith("/"):
        path = "/" + path

    query = resolved.forward_query
    return f"{scheme}://{resolved.target.host}{path}{'?' + query if query else ''}"
