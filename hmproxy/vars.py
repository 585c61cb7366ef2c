import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "hmproxy")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))

MAX_REDIRECTS = int(os.getenv("MAX_REDIRECTS", "5"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "15"))
RETRY_BACKOFF_SECONDS = float(os.getenv("RETRY_BACKOFF_SECONDS", "1.0"))
ORIGIN_SCHEME = os.getenv("ORIGIN_SCHEME", "https")

# 0 disables the identical method:url guard in front of the origin fetcher
FETCH_REPEAT_WINDOW_MS = int(os.getenv("FETCH_REPEAT_WINDOW_MS", "0"))
CART_REPEAT_WINDOW_MS = int(os.getenv("CART_REPEAT_WINDOW_MS", "500"))
TRACKER_RETENTION_SECONDS = float(os.getenv("TRACKER_RETENTION_SECONDS", "60"))
TRACKER_SWEEP_INTERVAL = float(os.getenv("TRACKER_SWEEP_INTERVAL", "60"))

SHIM_CACHE_TTL = float(os.getenv("SHIM_CACHE_TTL", "300"))
SITE_SCRIPTS_DIR = os.getenv(
    "SITE_SCRIPTS_DIR",
    os.path.join(os.path.dirname(__file__), "shims", "site_scripts"),
)

ASSET_PATH = os.getenv("ASSET_PATH", "/asset")
WS_BRIDGE_PATH = os.getenv("WS_BRIDGE_PATH", "/hm-ws-bridge")

REWRITE_CSS_URLS = os.environ.get("REWRITE_CSS_URLS", "true").lower() == "true"

CART_CDN_HOSTS = [
    h.strip()
    for h in os.getenv("CART_CDN_HOSTS", "cdn.shopify.com").split(",")
    if h.strip()
]

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")


def _parse_site_script_map(raw: str) -> dict:
    mapping: dict = {}
    if not raw:
        return mapping
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry:
            key, val = entry.split("=", 1)
            key = key.strip().lower()
            val = val.strip()
            if key and val:
                mapping[key] = val
    return mapping


SITE_SCRIPT_MAP = _parse_site_script_map(
    os.getenv("SITE_SCRIPT_MAP", "myshopify.com=shopify-sites.js")
)
