"""
Client-side scripts injected into proxied HTML.

All script text is rendered from Jinja2 templates with the ``ProxyContext``
as the only variable input, so the same context always yields the same
bytes.
"""

from typing import Optional

from jinja2 import Environment, PackageLoader

from hmproxy.models import ProxyContext, RewriteMode
from hmproxy.rewrite.rules import INJECTED_ATTR
from hmproxy.vars import WS_BRIDGE_PATH

DOMAIN_LOCK = "domain-lock"
INTERCEPTOR = "interceptor"
SITE_SHIM = "site-shim"

POLL_INTERVAL_MS = 50
ANCHOR_COOLDOWN_MS = 300
FORM_COOLDOWN_MS = 1000

env = Environment(
    loader=PackageLoader("hmproxy.rewrite", "templates"),
    autoescape=False,
    keep_trailing_newline=True,
)


def _variables(ctx: ProxyContext) -> dict:
    return {
        "target_host": ctx.target.host,
        "proxy_host": ctx.proxy_host,
        "protocol": ctx.protocol,
        "mode": ctx.mode,
        "ws_bridge_path": WS_BRIDGE_PATH,
        "poll_interval_ms": POLL_INTERVAL_MS,
        "anchor_cooldown_ms": ANCHOR_COOLDOWN_MS,
        "form_cooldown_ms": FORM_COOLDOWN_MS,
    }


def render_domain_lock(ctx: ProxyContext) -> str:
    return env.get_template("domain_lock.js.j2").render(**_variables(ctx))


def render_interceptor(ctx: ProxyContext) -> str:
    name = "interceptor_spa.js.j2" if ctx.target.mode == RewriteMode.SPA else "interceptor_classic.js.j2"
    return env.get_template(name).render(**_variables(ctx))


def script_block(name: str, source: str) -> str:
    return f'<script {INJECTED_ATTR}="{name}">\n{source}</script>\n'


def build_injection(ctx: ProxyContext, shim: Optional[str] = None) -> str:
    """Shim (when one matches the target), then Domain Lock, then Interceptor."""
    blocks = []
    if shim:
        blocks.append(script_block(SITE_SHIM, shim if shim.endswith("\n") else shim + "\n"))
    blocks.append(script_block(DOMAIN_LOCK, render_domain_lock(ctx)))
    blocks.append(script_block(INTERCEPTOR, render_interceptor(ctx)))
    return "".join(blocks)
