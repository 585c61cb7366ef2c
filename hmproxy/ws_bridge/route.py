"""
WebSocket bridge for SPA targets.

The SPA interceptor rewrites ``new WebSocket(...)`` to
``ws(s)://<proxy><WS_BRIDGE_PATH>?hmtarget=<host>&hmtype=2&hmurl=<encoded ws url>``.
This endpoint opens the real socket and relays frames both ways until
either side goes away, then closes the other.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from aiohttp import ClientSession, ClientWebSocketResponse, WSMsgType
from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketState
from opentelemetry import trace

from hmproxy.fetcher.headers import BROWSER_USER_AGENT
from hmproxy.models import TARGET_PARAM, URL_PARAM
from hmproxy.resolver import clean_target_host
from hmproxy.vars import WS_BRIDGE_PATH

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011

_WS_SCHEMES = {"ws": "ws", "wss": "wss", "http": "ws", "https": "wss"}
_UPSTREAM_DONE = (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR)


def upstream_ws_url(raw: Optional[str]) -> Optional[str]:
    """Normalize the ``hmurl`` value to a ws/wss URL, or None when unusable."""
    if not raw:
        return None
    try:
        parts = urlsplit(raw)
    except ValueError:
        return None
    scheme = _WS_SCHEMES.get(parts.scheme.lower())
    if not scheme or not parts.netloc:
        return None
    return urlunsplit((scheme, parts.netloc, parts.path or "/", parts.query, ""))


def upstream_headers(websocket: WebSocket, target_host: str) -> dict[str, str]:
    headers = {
        "Origin": f"https://{target_host}",
        "User-Agent": BROWSER_USER_AGENT,
    }
    cookie = websocket.headers.get("cookie")
    if cookie:
        headers["Cookie"] = cookie
    return headers


async def client_to_upstream(websocket: WebSocket, upstream: ClientWebSocketResponse) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            logger.debug("[WSBridge] Client disconnected")
            return
        if message.get("text") is not None:
            await upstream.send_str(message["text"])
        elif message.get("bytes") is not None:
            await upstream.send_bytes(message["bytes"])


async def upstream_to_client(upstream: ClientWebSocketResponse, websocket: WebSocket) -> None:
    async for msg in upstream:
        if msg.type == WSMsgType.TEXT:
            await websocket.send_text(msg.data)
        elif msg.type == WSMsgType.BINARY:
            await websocket.send_bytes(msg.data)
        elif msg.type in _UPSTREAM_DONE:
            break
    logger.debug("[WSBridge] Upstream closed")


async def relay(websocket: WebSocket, upstream: ClientWebSocketResponse) -> None:
    """Pump frames both ways; the first direction to finish ends the bridge."""
    tasks = [
        asyncio.create_task(client_to_upstream(websocket, upstream)),
        asyncio.create_task(upstream_to_client(upstream, websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        # Also runs when the bridge itself is cancelled mid-wait
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"[WSBridge] Relay stopped: {task.exception()!r}")


@router.websocket(WS_BRIDGE_PATH)
async def websocket_bridge(websocket: WebSocket):
    target_host = clean_target_host(websocket.query_params.get(TARGET_PARAM))
    target_url = upstream_ws_url(websocket.query_params.get(URL_PARAM))
    if not target_host or not target_url:
        logger.warning("[WSBridge] Rejected connection without a usable target")
        await websocket.close(code=POLICY_VIOLATION)
        return

    subprotocols = websocket.scope.get("subprotocols") or []

    with tracer.start_as_current_span("ws_bridge") as span:
        span.set_attribute("proxy.target", target_host)
        span.set_attribute("proxy.target_url", target_url)

        async with ClientSession() as session:
            try:
                upstream = await session.ws_connect(
                    target_url,
                    headers=upstream_headers(websocket, target_host),
                    protocols=subprotocols,
                )
            except Exception as e:
                logger.error(f"[WSBridge] Could not connect to {target_url}: {e}")
                span.set_attribute("proxy.error", str(e))
                await websocket.close(code=INTERNAL_ERROR)
                return

            logger.info(f"[WSBridge] Bridging to {target_url}")
            await websocket.accept(subprotocol=upstream.protocol)
            try:
                await relay(websocket, upstream)
            finally:
                if not upstream.closed:
                    await upstream.close()
                if (
                    websocket.client_state == WebSocketState.CONNECTED
                    and websocket.application_state == WebSocketState.CONNECTED
                ):
                    await websocket.close()
            logger.info(f"[WSBridge] Closed bridge to {target_url}")
