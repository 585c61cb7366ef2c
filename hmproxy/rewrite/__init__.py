from .cart_json import rewrite_cart_json
from .classifier import classify, looks_like_html
from .engine import rewrite_css, rewrite_html
from .location import rewrite_location_header
from .scripts import build_injection, render_domain_lock, render_interceptor
from .urls import rewrite_url

__all__ = [
    "build_injection",
    "classify",
    "looks_like_html",
    "render_domain_lock",
    "render_interceptor",
    "rewrite_cart_json",
    "rewrite_css",
    "rewrite_html",
    "rewrite_location_header",
    "rewrite_url",
]
