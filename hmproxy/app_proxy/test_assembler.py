import httpx

from hmproxy.app_proxy import assemble_headers, assemble_response
from hmproxy.app_proxy.assembler import CLASSIC_CSP, SPA_CSP, utf8_content_type
from hmproxy.models import ProxyContext, RewriteMode, Target, UpstreamResponse

CLASSIC = ProxyContext(target=Target("shop.test"), proxy_host="proxy.local", protocol="http")
SPA = ProxyContext(
    target=Target("app.test", RewriteMode.SPA), proxy_host="proxy.local", protocol="https"
)


def upstream(headers=None, body=b"", status=200):
    return UpstreamResponse(status=status, headers=httpx.Headers(headers or []), body=body)


def header_values(pairs, name):
    return [v for k, v in pairs if k.lower() == name.lower()]


class TestAssembleHeaders:
    def test_drops_framing_and_security_headers(self):
        headers = httpx.Headers(
            [
                ("Content-Type", "text/html"),
                ("X-Frame-Options", "DENY"),
                ("Content-Security-Policy", "default-src 'self'"),
                ("Content-Encoding", "gzip"),
                ("Content-Length", "42"),
                ("Transfer-Encoding", "chunked"),
                ("Connection", "keep-alive"),
                ("X-Custom", "kept"),
            ]
        )
        result = assemble_headers(headers, CLASSIC)
        names = {k.lower() for k, _ in result}

        assert "x-frame-options" not in names
        assert "content-encoding" not in names
        assert "content-length" not in names
        assert "transfer-encoding" not in names
        assert "connection" not in names
        assert header_values(result, "X-Custom") == ["kept"]
        assert header_values(result, "Content-Security-Policy") == [CLASSIC_CSP]

    def test_forces_no_cache(self):
        headers = httpx.Headers([("Cache-Control", "max-age=3600"), ("Expires", "tomorrow")])
        result = assemble_headers(headers, CLASSIC)
        assert header_values(result, "Cache-Control") == ["no-cache, no-store, must-revalidate"]
        assert header_values(result, "Pragma") == ["no-cache"]
        assert header_values(result, "Expires") == ["0"]

    def test_keeps_every_set_cookie(self):
        headers = httpx.Headers([("Set-Cookie", "a=1; Path=/"), ("Set-Cookie", "b=2; Path=/")])
        result = assemble_headers(headers, CLASSIC)
        assert header_values(result, "Set-Cookie") == ["a=1; Path=/", "b=2; Path=/"]

    def test_rewrites_location(self):
        headers = httpx.Headers([("Location", "https://shop.test/account/login")])
        result = assemble_headers(headers, CLASSIC)
        assert header_values(result, "Location") == [
            "http://proxy.local/account/login?hmtarget=shop.test&hmtype=1"
        ]

    def test_spa_policy_and_cors(self):
        headers = httpx.Headers(
            [("Access-Control-Allow-Origin", "https://app.test"), ("Access-Control-Max-Age", "60")]
        )
        result = assemble_headers(headers, SPA)
        assert header_values(result, "Content-Security-Policy") == [SPA_CSP]
        assert header_values(result, "Access-Control-Allow-Origin") == ["*"]
        assert header_values(result, "Access-Control-Max-Age") == []

    def test_content_type_override(self):
        headers = httpx.Headers([("Content-Type", "text/html; charset=iso-8859-1")])
        result = assemble_headers(headers, CLASSIC, content_type="text/html; charset=utf-8")
        assert header_values(result, "Content-Type") == ["text/html; charset=utf-8"]


class TestAssembleResponse:
    def test_rewritten_text_is_utf8(self):
        response = assemble_response(
            upstream([("Content-Type", "text/html; charset=iso-8859-1")], "café".encode("latin-1")),
            CLASSIC,
            body="café",
        )
        assert response.body == "café".encode("utf-8")
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert response.headers["content-length"] == str(len("café".encode("utf-8")))

    def test_passthrough_keeps_upstream_bytes(self):
        response = assemble_response(
            upstream([("Content-Type", "image/png")], b"\x89PNG", status=201), CLASSIC
        )
        assert response.status_code == 201
        assert response.body == b"\x89PNG"
        assert response.headers["content-type"] == "image/png"

    def test_multiple_set_cookie_survive(self):
        response = assemble_response(
            upstream([("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")]), CLASSIC, body=b""
        )
        assert response.headers.getlist("set-cookie") == ["a=1", "b=2"]


def test_utf8_content_type():
    assert utf8_content_type("text/html") == "text/html; charset=utf-8"
    assert utf8_content_type('text/css; charset="Shift_JIS"') == "text/css; charset=utf-8"
    assert utf8_content_type("") == ""
