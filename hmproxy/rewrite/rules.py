"""
Rewrite rules applied to HTML, CSS and inline JavaScript text.

Every rule is a pure ``(content, ctx) -> content`` function. Each skips any
URL that already carries the ``hmtarget=`` marker or already points at the
proxy host, so running the whole set twice yields the same text as running
it once. A replacement that fails leaves its own match untouched.
"""

import functools
import logging
import re
from re import Match, Pattern
from typing import Callable

from hmproxy.models import TARGET_PARAM, ProxyContext
from hmproxy.rewrite import urls

logger = logging.getLogger("uvicorn.error")

URL_ATTRIBUTES = (
    "data-src",
    "data-href",
    "d-src",
    "src",
    "href",
    "action",
    "poster",
    "background",
    "cite",
    "formaction",
)
SRCSET_ATTRIBUTES = ("data-srcset", "imagesrcset", "srcset")

INJECTED_ATTR = "data-hm-proxy"

# Anything up to the closing quote, staying inside one tag
_VALUE = r"(?:(?!(?P=q))[^<>])*"


def _attribute(names) -> str:
    return rf"(?<![\w-])(?P<attr>(?:{'|'.join(re.escape(n) for n in names)})\s*=\s*)(?P<q>[\"'])"


_ATTR = _attribute(URL_ATTRIBUTES)

PROTOCOL_RELATIVE_ATTR = re.compile(
    _ATTR + rf"//(?P<host>[^/\s\"'?#<>]+)(?P<rest>{_VALUE})(?P=q)", re.IGNORECASE
)
ABSOLUTE_ATTR = re.compile(
    _ATTR + rf"https?://(?P<host>[^/\s\"'?#<>]+)(?P<rest>{_VALUE})(?P=q)", re.IGNORECASE
)
ROOT_RELATIVE_ATTR = re.compile(
    _ATTR + rf"(?P<path>/(?![/\s\"']){_VALUE})(?P=q)", re.IGNORECASE
)
SRCSET_ATTR = re.compile(
    _attribute(SRCSET_ATTRIBUTES) + rf"(?P<value>{_VALUE})(?P=q)", re.IGNORECASE
)
SRCSET_CANDIDATE = re.compile(
    r"(?<![^\s,])(?P<url>(?:https?:)?//[^\s,]+|/(?!/)[^\s,]+)", re.IGNORECASE
)
CSS_URL = re.compile(
    r"(?<![\w.$])(?P<fn>url\(\s*)(?P<q>[\"']?)(?P<url>[^\"')\s]+)(?P=q)(?P<close>\s*\))",
    re.IGNORECASE,
)
JS_PROTOCOL_RELATIVE = re.compile(
    r"(?P<q>[\"'`])//(?P<host>[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+(?::\d+)?)"
    r"(?P<rest>(?:(?!(?P=q))[^\s\\<>])*)(?P=q)"
)
ORIGIN_TEMPLATE = re.compile(r"(?P<prefix>\$\{\s*window\.location\.origin\s*\})(?P<path>/[^`$\s]*)(?=`)")
ORIGIN_CONCAT = re.compile(
    r"(?P<prefix>window\.location\.origin\s*\+\s*(?P<q>[\"'`]))"
    r"(?P<path>/(?:(?!(?P=q))[^\s$\\])*)(?P=q)"
)
FETCH_LITERAL = re.compile(
    r"(?P<prefix>(?<![\w$.])fetch\s*\(\s*(?P<q>[\"'`]))"
    r"(?P<path>/(?!/)(?:(?!(?P=q))[^\s$\\])*)"
    r"(?P<suffix>(?P=q)\s*[,)])"
)
DYNAMIC_IMPORT = re.compile(
    r"(?P<prefix>(?<![\w$.])import\s*\(\s*(?P<q>[\"'`]))"
    r"(?P<path>/(?!/)(?:(?!(?P=q))[^\s$\\])*)"
    r"(?P<suffix>(?P=q)\s*\))"
)
BARE_ROOT_ATTR = re.compile(_ATTR + r"/(?P=q)", re.IGNORECASE)
QUERY_ONLY_ATTR = re.compile(_ATTR + rf"\?(?P<query>{_VALUE})(?P=q)", re.IGNORECASE)
EMPTY_ATTR = re.compile(
    r"(?<![\w-])(?P<attr>(?:href|action)\s*=\s*)(?P<q>[\"'])(?P=q)", re.IGNORECASE
)

META_REFRESH = re.compile(r"<meta[^>]*http-equiv\s*=\s*[\"']?refresh[\"']?[^>]*>", re.IGNORECASE)
BASE_HREF = re.compile(r"<base\s[^>]*href[^>]*>", re.IGNORECASE)
INLINE_SCRIPT = re.compile(
    rf"<script\b(?![^>]*{INJECTED_ATTR})[^>]*>(?P<body>[^<]*)</script>", re.IGNORECASE
)
VENDOR_SCRIPTS = (
    re.compile(r"<script\b[^>]*data-locksmith[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(
        r"<script\b[^>]*type\s*=\s*[\"']application/vnd\.locksmith\+json[\"'][^>]*>.*?</script>",
        re.IGNORECASE | re.DOTALL,
    ),
)

META_REFRESH_COMMENT = "<!-- Meta refresh removed by proxy -->"
BASE_HREF_COMMENT = "<!-- Base href removed by proxy -->"
SELF_REFERENCE_COMMENT = "<!-- Script mentioning target domain removed -->"

Rule = Callable[[str, ProxyContext], str]


def _safe(replace: Callable[[Match], str]) -> Callable[[Match], str]:
    """Leave a match as-is when its replacement fails."""

    @functools.wraps(replace)
    def wrapper(match: Match) -> str:
        try:
            return replace(match)
        except Exception as e:
            logger.debug(f"[Rewrite] Left fragment {match.group(0)[:80]!r} unchanged: {e!r}")
            return match.group(0)

    return wrapper


def _sub(pattern: Pattern, replace: Callable[[Match], str], content: str) -> str:
    return pattern.sub(_safe(replace), content)


def _attr(match: Match, value: str) -> str:
    q = match.group("q")
    return f"{match.group('attr')}{q}{value}{q}"


# Rule 1
def rewrite_protocol_relative_attributes(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        if urls.is_marked(m.group(0)):
            return m.group(0)
        rewritten = urls.protocol_relative(m.group("host"), m.group("rest"), ctx)
        return _attr(m, rewritten) if rewritten else m.group(0)

    return _sub(PROTOCOL_RELATIVE_ATTR, replace, content)


# Rule 2
def rewrite_absolute_attributes(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        if urls.is_marked(m.group(0)):
            return m.group(0)
        rewritten = urls.absolute(m.group("host"), m.group("rest"), ctx)
        return _attr(m, rewritten) if rewritten else m.group(0)

    return _sub(ABSOLUTE_ATTR, replace, content)


# Rule 3
def rewrite_root_relative_attributes(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        if urls.is_marked(m.group("path")):
            return m.group(0)
        return _attr(m, urls.root_relative(m.group("path"), ctx))

    return _sub(ROOT_RELATIVE_ATTR, replace, content)


# Rule 4
def rewrite_srcset_attributes(content: str, ctx: ProxyContext) -> str:
    def candidate(m: Match) -> str:
        return urls.rewrite_url(m.group("url"), ctx)

    def replace(m: Match) -> str:
        value = _sub(SRCSET_CANDIDATE, candidate, m.group("value"))
        return _attr(m, value)

    return _sub(SRCSET_ATTR, replace, content)


# Rule 5
def rewrite_css_urls(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        url = m.group("url")
        rewritten = urls.rewrite_url(url, ctx)
        if rewritten == url:
            return m.group(0)
        q = m.group("q")
        return f"{m.group('fn')}{q}{rewritten}{q}{m.group('close')}"

    return _sub(CSS_URL, replace, content)


# Rule 6
def rewrite_js_protocol_relative_strings(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        rest = m.group("rest")
        if urls.is_marked(rest) or "//" in rest or "/*" in rest or "*/" in rest:
            return m.group(0)
        rewritten = urls.protocol_relative(m.group("host"), rest, ctx)
        if not rewritten:
            return m.group(0)
        q = m.group("q")
        return f"{q}{rewritten}{q}"

    return _sub(JS_PROTOCOL_RELATIVE, replace, content)


def _marked_path(m: Match, ctx: ProxyContext) -> str:
    path = m.group("path")
    if urls.is_marked(path):
        return path
    return urls.append_marker(path, ctx.marker())


# Rule 7
def rewrite_origin_template_literals(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        return f"{m.group('prefix')}{_marked_path(m, ctx)}"

    return _sub(ORIGIN_TEMPLATE, replace, content)


# Rule 7, concatenation form
def rewrite_origin_concatenations(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        return f"{m.group('prefix')}{_marked_path(m, ctx)}{m.group('q')}"

    return _sub(ORIGIN_CONCAT, replace, content)


# Rule 8
def rewrite_fetch_literals(content: str, ctx: ProxyContext) -> str:
    def replace(m: Match) -> str:
        return f"{m.group('prefix')}{_marked_path(m, ctx)}{m.group('suffix')}"

    return _sub(FETCH_LITERAL, replace, content)


def rewrite_dynamic_imports(content: str, ctx: ProxyContext) -> str:
    """ES module ``import("/path")`` calls; only wired into the SPA pipeline."""

    def replace(m: Match) -> str:
        return f"{m.group('prefix')}{_marked_path(m, ctx)}{m.group('suffix')}"

    return _sub(DYNAMIC_IMPORT, replace, content)


# Rule 9
def rewrite_degenerate_attributes(content: str, ctx: ProxyContext) -> str:
    root = f"{ctx.proxy_origin}/?{ctx.marker()}"

    def bare_root(m: Match) -> str:
        return _attr(m, root)

    def query_only(m: Match) -> str:
        query = m.group("query")
        if urls.is_marked(query):
            return m.group(0)
        return _attr(m, f"{ctx.proxy_origin}{urls.append_marker('/?' + query, ctx.marker())}")

    content = _sub(BARE_ROOT_ATTR, bare_root, content)
    content = _sub(QUERY_ONLY_ATTR, query_only, content)
    return _sub(EMPTY_ATTR, bare_root, content)


def remove_meta_refresh(content: str, ctx: ProxyContext) -> str:
    return META_REFRESH.sub(META_REFRESH_COMMENT, content)


def remove_base_href(content: str, ctx: ProxyContext) -> str:
    return BASE_HREF.sub(BASE_HREF_COMMENT, content)


def remove_vendor_scripts(content: str, ctx: ProxyContext) -> str:
    for pattern in VENDOR_SCRIPTS:
        content = pattern.sub("", content)
    return content


def remove_self_reference_scripts(content: str, ctx: ProxyContext) -> str:
    """
    Drop origin scripts whose inline text names the origin host.

    Mentions inside a proxy marker do not count, otherwise a second pass
    would remove scripts the first pass rewrote.
    """
    host = ctx.target.host.lower()
    marker = f"{TARGET_PARAM}={host}"

    def replace(m: Match) -> str:
        body = m.group("body").lower().replace(marker, "")
        return SELF_REFERENCE_COMMENT if host in body else m.group(0)

    return INLINE_SCRIPT.sub(replace, content)


_DOCTYPE = re.compile(r"<!DOCTYPE", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html(?=[\s>])", re.IGNORECASE)
_HEAD_OPEN = re.compile(r"<head(?=[\s>])[^>]*>", re.IGNORECASE)


def inject_scripts(content: str, block: str) -> str:
    """
    Insert ``block`` as early as possible: before the doctype, else before
    ``<html``, else right after the opening ``<head>`` tag, else at the top.
    """
    if not block or INJECTED_ATTR in content:
        return content

    for pattern in (_DOCTYPE, _HTML_OPEN):
        match = pattern.search(content)
        if match:
            return content[: match.start()] + block + content[match.start():]

    match = _HEAD_OPEN.search(content)
    if match:
        return content[: match.end()] + block + content[match.end():]

    return block + content
