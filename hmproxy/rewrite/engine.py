"""
The rewrite pipeline: a fixed, ordered composition of the rules in
``hmproxy.rewrite.rules``.

HTML pipeline:

1. structural removals (meta refresh, base href, vendor scripts, scripts
   naming the origin host)
2. script injection (site shim, Domain Lock, Proxy Interceptor)
3. URL rules 1-9, plus dynamic ``import()`` in SPA mode

The injected scripts go in before the URL rules run, so they pass through
them too; their source never contains a shape any rule matches.
"""

import logging
from typing import Optional, Sequence

from hmproxy.models import ProxyContext, RewriteMode
from hmproxy.rewrite import rules
from hmproxy.rewrite.rules import Rule
from hmproxy.rewrite.scripts import build_injection

logger = logging.getLogger("uvicorn.error")

STRUCTURAL_TRANSFORMS: Sequence[Rule] = (
    rules.remove_meta_refresh,
    rules.remove_base_href,
    rules.remove_vendor_scripts,
    rules.remove_self_reference_scripts,
)

URL_RULES: Sequence[Rule] = (
    rules.rewrite_protocol_relative_attributes,
    rules.rewrite_absolute_attributes,
    rules.rewrite_root_relative_attributes,
    rules.rewrite_srcset_attributes,
    rules.rewrite_css_urls,
    rules.rewrite_js_protocol_relative_strings,
    rules.rewrite_origin_template_literals,
    rules.rewrite_origin_concatenations,
    rules.rewrite_fetch_literals,
    rules.rewrite_degenerate_attributes,
)

SPA_RULES: Sequence[Rule] = (rules.rewrite_dynamic_imports,)

CSS_RULES: Sequence[Rule] = (rules.rewrite_css_urls,)


def apply_rules(content: str, ctx: ProxyContext, pipeline: Sequence[Rule]) -> str:
    for rule in pipeline:
        try:
            content = rule(content, ctx)
        except Exception as e:
            logger.warning(f"[Rewrite] Rule {rule.__name__} skipped for {ctx.target.host}: {e!r}")
    return content


def rewrite_html(body: str, ctx: ProxyContext, shim: Optional[str] = None) -> str:
    content = apply_rules(body, ctx, STRUCTURAL_TRANSFORMS)

    try:
        content = rules.inject_scripts(content, build_injection(ctx, shim))
    except Exception as e:
        logger.error(f"[Rewrite] Script injection failed for {ctx.target.host}: {e!r}")

    pipeline = tuple(URL_RULES)
    if ctx.target.mode == RewriteMode.SPA:
        pipeline += tuple(SPA_RULES)
    return apply_rules(content, ctx, pipeline)


def rewrite_css(body: str, ctx: ProxyContext) -> str:
    return apply_rules(body, ctx, CSS_RULES)
