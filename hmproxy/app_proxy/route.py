import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from opentelemetry import trace

from hmproxy.errors import NoTargetSpecified, RequestRateLimited, UpstreamFetchError
from hmproxy.fetcher import build_upstream_headers, is_cart_path
from hmproxy.fetcher.headers import BODY_METHODS
from hmproxy.models import ContentKind, ProxyContext, Target, UpstreamResponse
from hmproxy.resolver import build_origin_url, resolve_target
from hmproxy.rewrite import classify, rewrite_cart_json, rewrite_css, rewrite_html
from hmproxy.state import ProxyState, get_state
from hmproxy.vars import ASSET_PATH, ORIGIN_SCHEME

from .assembler import assemble_response

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# Per client-IP cooldown applies below this prefix
CART_PREFIX = "/cart"


def proxy_context(request: Request, target: Target) -> ProxyContext:
    """The proxy host and protocol the browser used to reach us."""
    proxy_host = request.headers.get("host") or request.url.netloc
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    protocol = forwarded_proto.split(",")[0].strip() or request.url.scheme
    return ProxyContext(target=target, proxy_host=proxy_host, protocol=protocol)


def under_cart_prefix(path: str) -> bool:
    return path == CART_PREFIX or path.startswith(CART_PREFIX + "/")


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def error_response(
    status_code: int,
    error: str,
    message: str,
    cart: bool = False,
    description: Optional[str] = None,
) -> Response:
    """Cart flows get a JSON body the storefront UI can render; everything else plain text."""
    if cart:
        return JSONResponse(
            status_code=status_code,
            content={
                "error": error,
                "message": message,
                "description": description or "The request could not be completed. Please try again.",
            },
        )
    return PlainTextResponse(f"{error}: {message}" if message else error, status_code=status_code)


def rewrite_body(
    kind: ContentKind, upstream: UpstreamResponse, ctx: ProxyContext, state: ProxyState
) -> Optional[str]:
    if kind in (ContentKind.BINARY, ContentKind.OTHER):
        return None

    text = upstream.text
    if text is None:
        text = upstream.body.decode("utf-8", errors="replace")

    if kind == ContentKind.HTML:
        return rewrite_html(text, ctx, shim=state.shims.load(ctx.target.host))
    if kind == ContentKind.JSON:
        return rewrite_cart_json(text, ctx)
    return rewrite_css(text, ctx)


async def forward_to_origin(request: Request, state: ProxyState, asset: bool = False) -> Response:
    """
    Resolve the target, fetch it from the origin and hand back the rewritten
    response. This is the only place proxy errors become HTTP responses.
    """
    path = request.url.path
    cart = is_cart_path(path)

    with tracer.start_as_current_span("proxy_request") as span:
        span.set_attribute("proxy.method", request.method)

        if under_cart_prefix(path):
            try:
                state.cart_tracker.check(f"{client_ip(request)}:{request.method}:{path}")
            except RequestRateLimited:
                span.set_attribute("proxy.error", "cart_cooldown")
                return JSONResponse(
                    status_code=429,
                    content={
                        "error": "Too many requests",
                        "message": "Please wait a moment before trying again",
                    },
                )

        try:
            resolved = resolve_target(request.url.query, request.headers, request.headers.get("host", ""))
        except NoTargetSpecified as e:
            logger.info(f"[Proxy] {request.method} {path}: {e}")
            span.set_attribute("proxy.error", "no_target")
            return error_response(400, "Bad request", str(e), cart)

        ctx = proxy_context(request, resolved.target)
        target_url = build_origin_url(
            resolved, path, ORIGIN_SCHEME, strip_prefix=ASSET_PATH if asset else ""
        )
        span.set_attribute("proxy.target", resolved.target.host)
        span.set_attribute("proxy.target_url", target_url)
        logger.debug(f"[Proxy] {request.method} {path} -> {target_url}")

        try:
            body = await request.body() if request.method in BODY_METHODS else None
            headers = build_upstream_headers(
                resolved.target.host, request.headers, has_body=bool(body), cart=cart
            )
            upstream = await state.fetcher.fetch(target_url, request.method, headers, body)
            span.set_attribute("proxy.status_code", upstream.status)

            if asset:
                kind = ContentKind.OTHER
                rewritten = None
            else:
                kind = classify(upstream, path)
                rewritten = rewrite_body(kind, upstream, ctx, state)
            span.set_attribute("proxy.content_kind", kind.value)

            return assemble_response(upstream, ctx, rewritten, request_path=path)

        except RequestRateLimited as e:
            span.set_attribute("proxy.error", "rate_limited")
            return error_response(429, "Too many requests", str(e), cart)

        except UpstreamFetchError as e:
            chain = " -> ".join(e.url_chain) or target_url
            logger.error(f"[Proxy] Request failed for {target_url}: {e} (chain: {chain})")
            span.set_attribute("proxy.error", str(e))
            return error_response(
                502,
                "Request failed",
                str(e),
                cart,
                description="The store could not be reached. Please try again.",
            )

        except Exception as e:
            logger.error(f"[Proxy] Unexpected error for {target_url}: {e}", exc_info=True)
            span.set_attribute("proxy.error", str(e))
            return error_response(500, "Proxy error", str(e), cart)


@router.api_route(ASSET_PATH, methods=PROXY_METHODS)
@router.api_route(ASSET_PATH + "/{path:path}", methods=PROXY_METHODS)
async def proxy_asset(request: Request, state: ProxyState = Depends(get_state)):
    """Sub-resource fetches; the body is never rewritten."""
    return await forward_to_origin(request, state, asset=True)


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_all(request: Request, path: str, state: ProxyState = Depends(get_state)):
    """Catch-all route that proxies everything else through the rewrite pipeline."""
    return await forward_to_origin(request, state)
