# pkgpatches/fetcher.py
"""
fetcher.py - remote content access for pkgpatches

Features:
- Transport protocol: fetch(origin, url) -> bytes; the origin is the URL host
- UrllibTransport: http(s), file:// and plain local paths, with retries and timeout
- RemoteContentCache: memoizes bytes and decoded JSON per URL for the process lifetime
- Fetch failures surface as TransportError; the cache never retries on its own
"""

from __future__ import annotations

import os
import json
import time
import urllib.error
import urllib.request
from urllib.parse import urlparse
from typing import Any, Dict, Optional, Protocol

from pkgpatches.config import get_fetcher_config
from pkgpatches.errors import TransportError
from pkgpatches.logging import get_logger

logger = get_logger("fetcher")

# -----------------------------------------------------------------------
# Utility helpers
# -----------------------------------------------------------------------
def origin_of(url: str) -> str:
    """Host part of `url`; local paths have an empty origin."""
    return urlparse(url).hostname or ""

def is_remote(url: str) -> bool:
    return urlparse(url).scheme in ("http", "https", "ftp")

def _local_path(url: str) -> str:
    if url.startswith("file://"):
        return urllib.request.url2pathname(urlparse(url).path)
    return os.path.expanduser(url)

# -----------------------------------------------------------------------
# Transports
# -----------------------------------------------------------------------
class Transport(Protocol):
    def fetch(self, origin: str, url: str) -> bytes:
        ...


class UrllibTransport:
    """Byte transport over urllib; retry policy lives here, not in the cache."""

    def __init__(self, timeout: Optional[float] = None, retries: Optional[int] = None,
                 retry_backoff: Optional[float] = None, user_agent: Optional[str] = None):
        cfg = get_fetcher_config()
        self.timeout = float(timeout if timeout is not None else cfg.get("http_timeout", 30))
        self.retries = max(1, int(retries if retries is not None else cfg.get("retries", 3)))
        self.retry_backoff = float(retry_backoff if retry_backoff is not None else cfg.get("retry_backoff", 0.5))
        self.user_agent = user_agent or cfg.get("user_agent", "pkgpatches")

    def fetch(self, origin: str, url: str) -> bytes:
        if not is_remote(url):
            return self._fetch_local(url)
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                return self._fetch_http(url)
            except urllib.error.HTTPError as e:
                # client errors will not get better on retry
                if 400 <= e.code < 500:
                    raise TransportError(f"HTTP {e.code} fetching {url}", url=url) from e
                last_error = e
            except (urllib.error.URLError, OSError) as e:
                last_error = e
            logger.debug("fetch attempt %d/%d failed for %s (origin=%s): %s", attempt, self.retries, url, origin, last_error)
            if attempt < self.retries and self.retry_backoff:
                time.sleep(self.retry_backoff * attempt)
        raise TransportError(f"failed to fetch {url}: {last_error}", url=url) from last_error

    def _fetch_http(self, url: str) -> bytes:
        req = urllib.request.Request(url, headers={"User-Agent": self.user_agent})
        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            return resp.read()

    def _fetch_local(self, url: str) -> bytes:
        path = _local_path(url)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise TransportError(f"cannot read {path}: {e}", url=url) from e

# -----------------------------------------------------------------------
# RemoteContentCache
# -----------------------------------------------------------------------
class RemoteContentCache:
    """
    Per-run memo of fetched content, keyed by URL.

    Remote content is assumed immutable for the duration of a run: once a URL
    was fetched successfully it is never fetched again.
    """

    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport or UrllibTransport()
        self._bytes: Dict[str, bytes] = {}
        self._json: Dict[str, Any] = {}
        self._metrics = {"fetch.total": 0, "cache.hits": 0}

    def _fetch(self, url: str) -> bytes:
        self._metrics["fetch.total"] += 1
        try:
            data = self.transport.fetch(origin_of(url), url)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"failed to fetch {url}: {e}", url=url) from e
        logger.debug("fetched %s (%d bytes)", url, len(data))
        return data

    def get_bytes(self, url: str) -> bytes:
        if url in self._bytes:
            self._metrics["cache.hits"] += 1
            return self._bytes[url]
        data = self._fetch(url)
        self._bytes[url] = data
        return data

    def get_json(self, url: str) -> Any:
        if url in self._json:
            self._metrics["cache.hits"] += 1
            return self._json[url]
        raw = self._bytes[url] if url in self._bytes else self._fetch(url)
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise TransportError(f"invalid JSON document at {url}: {e}", url=url) from e
        self._bytes.setdefault(url, raw)
        self._json[url] = data
        return data

    def __contains__(self, url: str) -> bool:
        return url in self._bytes or url in self._json

    def get_metrics(self) -> Dict[str, int]:
        return dict(self._metrics)
