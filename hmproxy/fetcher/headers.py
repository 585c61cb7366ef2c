from typing import Mapping, Optional

# Never forwarded verbatim to an origin; Accept-Encoding is forced to identity
STRIPPED_REQUEST_HEADERS = {
    "content-length",
    "transfer-encoding",
    "connection",
    "accept-encoding",
}

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def is_cart_path(path: str) -> bool:
    """Commerce cart flows get dedicated headers, rewrite pass and error shape."""
    return "/cart/" in path or "cart.js" in path


def build_upstream_headers(
    target_host: str,
    incoming: Mapping[str, str],
    has_body: bool = False,
    cart: bool = False,
) -> dict[str, str]:
    """
    Build the header set sent to the origin.

    The origin sees an ordinary browser navigation; only the client's cookies,
    its forwarding chain and (for requests with a body) its content type are
    carried over.
    """
    headers = {
        "Host": target_host,
        "User-Agent": BROWSER_USER_AGENT,
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,"
            "image/avif,image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Cache-Control": "max-age=0",
        "X-Forwarded-For": incoming.get("x-forwarded-for", "127.0.0.1"),
        "X-Forwarded-Proto": "https",
    }

    if incoming.get("cookie"):
        headers["Cookie"] = incoming["cookie"]

    if has_body and incoming.get("content-type"):
        headers["Content-Type"] = incoming["content-type"]

    # Conditional headers are never copied, so cart responses are always fresh
    if cart:
        headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        headers["Pragma"] = "no-cache"
        headers["X-Requested-With"] = "XMLHttpRequest"

    return headers


def clean_request_headers(headers: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Drop empty values and hop-level headers, then force an uncompressed body."""
    cleaned = {}
    for name, value in (headers or {}).items():
        if value is None or value == "":
            continue
        if name.lower() in STRIPPED_REQUEST_HEADERS:
            continue
        cleaned[name] = value
    cleaned["Accept-Encoding"] = "identity"
    return cleaned
