import httpx
import pytest

from hmproxy.models import ContentKind, UpstreamResponse
from hmproxy.rewrite.classifier import classify, looks_like_html


def upstream(content_type: str, body: bytes = b"", text=None) -> UpstreamResponse:
    return UpstreamResponse(
        status=200,
        headers=httpx.Headers({"content-type": content_type} if content_type else {}),
        body=body,
        text=text,
    )


class TestClassify:
    def test_html_by_content_type(self):
        assert classify(upstream("text/html; charset=utf-8")) == ContentKind.HTML

    @pytest.mark.parametrize(
        "content_type",
        [
            "image/png",
            "video/mp4",
            "audio/mpeg",
            "application/octet-stream",
            "application/pdf",
            "application/zip",
            "font/woff2",
            "application/font-woff",
        ],
    )
    def test_binary_types(self, content_type):
        assert classify(upstream(content_type, b"\x89PNG")) == ContentKind.BINARY

    def test_mislabelled_html_sniffed(self):
        body = b"<!doctype html><html><body>hi</body></html>"
        assert classify(upstream("text/plain", body)) == ContentKind.HTML

    def test_missing_content_type_sniffed(self):
        assert classify(upstream("", b"  <div>fragment</div>")) == ContentKind.HTML

    def test_binary_label_wins_over_signature(self):
        assert classify(upstream("application/octet-stream", b"<html>")) == ContentKind.BINARY

    def test_javascript_with_markup_not_sniffed(self):
        body = b'document.write("<div>x</div>")'
        assert classify(upstream("application/javascript", body)) == ContentKind.OTHER

    def test_cart_json(self):
        response = upstream("application/json", b'{"items":[]}')
        assert classify(response, "/cart.js") == ContentKind.JSON
        assert classify(response, "/cart/add.js") == ContentKind.JSON

    def test_non_cart_json_is_passthrough(self):
        assert classify(upstream("application/json", b"{}"), "/api/products") == ContentKind.OTHER

    def test_css(self):
        assert classify(upstream("text/css", b"a{}")) == ContentKind.CSS

    def test_css_disabled(self, monkeypatch):
        monkeypatch.setattr("hmproxy.rewrite.classifier.REWRITE_CSS_URLS", False)
        assert classify(upstream("text/css", b"a{}")) == ContentKind.OTHER

    def test_plain_text(self):
        assert classify(upstream("text/plain", b"just words")) == ContentKind.OTHER


class TestLooksLikeHtml:
    def test_only_first_kilobyte_inspected(self):
        assert not looks_like_html("x" * 2000 + "<html>")

    def test_case_insensitive(self):
        assert looks_like_html("<TITLE>Shop</TITLE>")

    def test_empty(self):
        assert not looks_like_html(b"")
        assert not looks_like_html(None)
