import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

import httpx

TARGET_PARAM = "hmtarget"
TYPE_PARAM = "hmtype"
URL_PARAM = "hmurl"
PROXY_PARAMS = (TARGET_PARAM, TYPE_PARAM, URL_PARAM)

# Presence of this token in a URL means the proxy already rewrote it
MARKER_TOKEN = f"{TARGET_PARAM}="


class RewriteMode(IntEnum):
    CLASSIC = 1
    SPA = 2

    @classmethod
    def parse(cls, raw: Optional[str]) -> "RewriteMode":
        """
        Map a raw ``hmtype`` value to a mode, defaulting to classic.

        Only the leading digit counts, so a payload glued onto it by client-side
        concatenation does not change the mode.
        """
        match = re.match(r"\s*([0-9])", raw or "")
        if not match:
            return cls.CLASSIC
        try:
            return cls(int(match.group(1)))
        except ValueError:
            return cls.CLASSIC


class ContentKind(str, Enum):
    HTML = "html"
    JSON = "json"
    CSS = "css"
    BINARY = "binary"
    OTHER = "other"


@dataclass(frozen=True)
class Target:
    host: str
    mode: RewriteMode = RewriteMode.CLASSIC
    asset_url: Optional[str] = None


@dataclass(frozen=True)
class ProxyContext:
    """The values every rewrite rule is parameterized with."""

    target: Target
    proxy_host: str
    protocol: str = "http"

    @property
    def mode(self) -> int:
        return int(self.target.mode)

    def marker(self, host: Optional[str] = None) -> str:
        return f"{TARGET_PARAM}={host or self.target.host}&{TYPE_PARAM}={self.mode}"

    @property
    def proxy_origin(self) -> str:
        return f"{self.protocol}://{self.proxy_host}"


@dataclass
class UpstreamResponse:
    status: int
    headers: httpx.Headers
    body: bytes
    text: Optional[str] = None
    url: str = ""
    url_chain: list[str] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")
