import logging
import posixpath
from typing import Optional

from hmproxy.models import ProxyContext
from hmproxy.rewrite import urls

logger = logging.getLogger("uvicorn.error")


def rewrite_location_header(
    location: Optional[str], ctx: ProxyContext, request_path: str = "/"
) -> Optional[str]:
    """
    Keep a redirect inside the proxy.

    Absolute, protocol-relative and root-relative targets use the same shapes
    as the body rules; a document-relative target is resolved against the
    directory of ``request_path`` first.
    """
    if not location:
        return location

    try:
        base = request_path if request_path.endswith("/") else posixpath.dirname(request_path) + "/"
        rewritten = urls.rewrite_url(location, ctx, base_path=base)
    except Exception as e:
        logger.warning(f"[Rewrite] Could not rewrite Location {location!r}: {e!r}")
        return location

    if rewritten != location:
        logger.debug(f"[Rewrite] Location {location} -> {rewritten}")
    return rewritten
