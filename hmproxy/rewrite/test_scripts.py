"""
Tests for the injected client scripts.

The scripts themselves run in the browser; here we check that rendering is
deterministic, carries the context, and survives the server-side rules
unchanged.
"""

import json

import pytest

from hmproxy.models import ProxyContext, RewriteMode, Target
from hmproxy.rewrite import engine
from hmproxy.rewrite.scripts import (
    build_injection,
    render_domain_lock,
    render_interceptor,
)


@pytest.fixture
def ctx():
    return ProxyContext(Target("shop.example"), "localhost:3000", "http")


@pytest.fixture
def spa_ctx():
    return ProxyContext(Target("app.example", RewriteMode.SPA), "proxy.test", "https")


class TestDomainLock:
    def test_context_values_rendered(self, ctx):
        source = render_domain_lock(ctx)
        assert f"var TARGET_DOMAIN = {json.dumps('shop.example')};" in source
        assert f"var PROXY_HOST = {json.dumps('localhost:3000')};" in source
        assert 'var PROXY_PROTOCOL = "http:";' in source

    def test_deterministic(self, ctx):
        assert render_domain_lock(ctx) == render_domain_lock(ctx)

    def test_guards(self, ctx):
        source = render_domain_lock(ctx)
        assert "monitoringActive = false" in source
        assert "document, \"domain\"" in source
        assert 'typeof handler === "string"' in source

    def test_host_is_escaped(self):
        ctx = ProxyContext(Target('evil"</script>'), "localhost:3000", "http")
        assert "</script>" not in render_domain_lock(ctx)


class TestInterceptor:
    def test_classic_has_no_spa_hooks(self, ctx):
        source = render_interceptor(ctx)
        assert "window.proxyInterceptorLoaded" in source
        assert "XMLHttpRequest.prototype.open" in source
        assert "serviceWorker" not in source
        assert "WS_BRIDGE_PATH" not in source

    def test_spa_variant(self, spa_ctx):
        source = render_interceptor(spa_ctx)
        assert "navigator.serviceWorker.register" in source
        assert 'var WS_BRIDGE_PATH = "/hm-ws-bridge";' in source
        assert "var MODE = 2;" in source
        assert 'var PROXY_PROTOCOL = "https:";' in source

    def test_includes_are_rendered(self, ctx):
        source = render_interceptor(ctx)
        assert "{%" not in source
        assert "{{" not in source
        assert "function rewriteUrl(url)" in source
        assert "document.createElement = function" in source

    def test_proxy_host_compared_case_insensitively(self, spa_ctx):
        source = render_interceptor(spa_ctx)
        assert "function isProxyHost(host)" in source
        assert "PROXY_HOST.toLowerCase()" in source
        assert "parts[0] === PROXY_HOST" not in source
        assert "var onProxy = isProxyHost(parsed.host);" in source


class TestBuildInjection:
    def test_order(self, ctx):
        block = build_injection(ctx, shim="window.a = 1;")
        assert block.index('data-hm-proxy="site-shim"') < block.index('data-hm-proxy="domain-lock"')
        assert block.index('data-hm-proxy="domain-lock"') < block.index('data-hm-proxy="interceptor"')

    def test_without_shim(self, ctx):
        block = build_injection(ctx)
        assert "site-shim" not in block
        assert block.count("<script ") == 2

    @pytest.mark.parametrize("fixture", ["ctx", "spa_ctx"])
    def test_scripts_unchanged_by_url_rules(self, fixture, request):
        context = request.getfixturevalue(fixture)
        block = build_injection(context)
        pipeline = tuple(engine.URL_RULES) + tuple(engine.SPA_RULES)
        assert engine.apply_rules(block, context, pipeline) == block
