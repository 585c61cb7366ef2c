from .headers import build_upstream_headers, clean_request_headers, is_cart_path
from .origin_fetcher import OriginFetcher, is_textual

__all__ = [
    "OriginFetcher",
    "build_upstream_headers",
    "clean_request_headers",
    "is_cart_path",
    "is_textual",
]
