"""
Registry of site-specific compatibility shims.

A shim is a plain JavaScript file injected ahead of the proxy's own scripts
for targets that need extra globals to boot under a rewritten DOM. The
registry maps a host pattern to a file name: an exact host match wins,
otherwise the first pattern contained in the host is used.
"""

import logging
import os
from typing import Mapping, Optional

from hmproxy.guards import TTLStore
from hmproxy.vars import SHIM_CACHE_TTL, SITE_SCRIPT_MAP, SITE_SCRIPTS_DIR

logger = logging.getLogger("uvicorn.error")

TARGET_PLACEHOLDER = "${target}"


class ShimRegistry:
    def __init__(
        self,
        directory: str = SITE_SCRIPTS_DIR,
        mapping: Optional[Mapping[str, str]] = None,
        ttl: float = SHIM_CACHE_TTL,
        cache: Optional[TTLStore] = None,
    ):
        self.directory = directory
        self.mapping = {k.lower(): v for k, v in (SITE_SCRIPT_MAP if mapping is None else mapping).items()}
        self.ttl = ttl
        self.cache = cache if cache is not None else TTLStore(retention=ttl or float("inf"))

    def filename_for(self, host: str) -> Optional[str]:
        host = (host or "").lower()
        if not host:
            return None
        if host in self.mapping:
            return self.mapping[host]
        for pattern, filename in self.mapping.items():
            if pattern in host:
                return filename
        return None

    def _read(self, filename: str) -> str:
        cached = self.cache.get(filename, max_age=self.ttl)
        if cached is not None:
            return cached

        path = os.path.join(self.directory, os.path.basename(filename))
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
            logger.info(f"[Shims] Loaded {filename}")
        except OSError as e:
            logger.warning(f"[Shims] Could not read {path}: {e}")
            source = ""

        self.cache.set(filename, source)
        return source

    def load(self, host: str) -> Optional[str]:
        """Return the shim source for ``host`` with the target filled in, if any."""
        filename = self.filename_for(host)
        if not filename:
            return None
        source = self._read(filename)
        if not source:
            return None
        logger.debug(f"[Shims] Using {filename} for {host}")
        return source.replace(TARGET_PLACEHOLDER, host)
