"""
Process-wide state shared by every request.

Everything mutable that outlives a single request lives on one
``ProxyState``: the request-loop guards, the shim registry with its cache
and the Origin Fetcher that consults the fetch guard.
"""

from dataclasses import dataclass

from fastapi.requests import HTTPConnection

from hmproxy.fetcher import OriginFetcher
from hmproxy.guards import RequestTracker, TTLStore
from hmproxy.shims import ShimRegistry
from hmproxy.vars import (
    CART_REPEAT_WINDOW_MS,
    FETCH_REPEAT_WINDOW_MS,
    TRACKER_RETENTION_SECONDS,
)


@dataclass
class ProxyState:
    fetch_tracker: RequestTracker
    cart_tracker: RequestTracker
    shims: ShimRegistry
    fetcher: OriginFetcher

    @property
    def stores(self) -> list[TTLStore]:
        return [self.fetch_tracker, self.cart_tracker, self.shims.cache]


def create_state() -> ProxyState:
    fetch_tracker = RequestTracker(FETCH_REPEAT_WINDOW_MS, TRACKER_RETENTION_SECONDS)
    return ProxyState(
        fetch_tracker=fetch_tracker,
        cart_tracker=RequestTracker(CART_REPEAT_WINDOW_MS, TRACKER_RETENTION_SECONDS),
        shims=ShimRegistry(),
        fetcher=OriginFetcher(tracker=fetch_tracker),
    )


def get_state(connection: HTTPConnection) -> ProxyState:
    """FastAPI dependency; creates the state on first use when no lifespan ran."""
    app_state = connection.app.state
    if getattr(app_state, "proxy", None) is None:
        app_state.proxy = create_state()
    return app_state.proxy
