import json

import pytest

from hmproxy.models import ProxyContext, Target
from hmproxy.rewrite.cart_json import rewrite_cart_json

MARKER = "hmtarget=shop.example&hmtype=1"


@pytest.fixture
def ctx():
    return ProxyContext(Target("shop.example"), "localhost:3000", "http")


class TestRewriteCartJson:
    def test_url_fields_marked(self, ctx):
        body = '{"items":[{"url":"/products/tee?variant=5","title":"Tee"}]}'
        result = json.loads(rewrite_cart_json(body, ctx))
        assert result["items"][0]["url"] == f"/products/tee?variant=5&{MARKER}"
        assert result["items"][0]["title"] == "Tee"

    def test_url_field_spacing_preserved(self, ctx):
        body = '{"url": "/cart"}'
        assert rewrite_cart_json(body, ctx) == f'{{"url": "/cart?{MARKER}"}}'

    def test_cdn_urls_proxied(self, ctx):
        body = '{"image":"https://cdn.shopify.com/s/files/1/tee.jpg?v=1"}'
        result = json.loads(rewrite_cart_json(body, ctx, cdn_hosts=["cdn.shopify.com"]))
        assert result["image"] == (
            "http://localhost:3000/s/files/1/tee.jpg?v=1&hmtarget=cdn.shopify.com&hmtype=1"
        )

    def test_other_absolute_urls_untouched(self, ctx):
        body = '{"image":"https://images.example/tee.jpg","url":"//cdn.example/x"}'
        assert rewrite_cart_json(body, ctx, cdn_hosts=["cdn.shopify.com"]) == body

    def test_idempotent(self, ctx):
        body = '{"url":"/products/tee","image":"https://cdn.shopify.com/a.jpg"}'
        once = rewrite_cart_json(body, ctx, cdn_hosts=["cdn.shopify.com"])
        assert rewrite_cart_json(once, ctx, cdn_hosts=["cdn.shopify.com"]) == once

    def test_no_cdn_hosts(self, ctx):
        body = '{"image":"https://cdn.shopify.com/a.jpg"}'
        assert rewrite_cart_json(body, ctx, cdn_hosts=[]) == body

    def test_unparseable_cdn_url_falls_back_to_asset_route(self, ctx):
        body = '{"image":"https://cdn.shopify.com]/a.jpg"}'
        result = json.loads(rewrite_cart_json(body, ctx, cdn_hosts=["cdn.shopify.com]"]))
        assert result["image"] == (
            "http://localhost:3000/asset?hmtarget=shop.example&hmtype=1"
            "&hmurl=https%3A%2F%2Fcdn.shopify.com%5D%2Fa.jpg"
        )
