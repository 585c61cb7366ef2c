from .target_resolver import (
    ResolvedRequest,
    build_origin_url,
    clean_target_host,
    normalize_query,
    resolve_target,
)

__all__ = [
    "ResolvedRequest",
    "build_origin_url",
    "clean_target_host",
    "normalize_query",
    "resolve_target",
]
