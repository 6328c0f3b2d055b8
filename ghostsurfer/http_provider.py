"""
aiohttp page-session provider ("browser emulation").

Fetches the document, then every asset the HTML references (scripts,
stylesheets, images, media, frames) the way a browser's first load would.
No JavaScript runs, so background data calls made by scripts are not seen.
"""

import asyncio
import itertools
import logging
import re
from html import unescape
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

import aiohttp

from .config import SimulationConfig
from .errors import NavigationError, NavigationTimeout
from .models import CapturedRequest
from .providers import NO_CACHE_HEADERS, USER_AGENT, PageSession, PageSessionProvider
from .timing import monotonic_ms

logger = logging.getLogger(__name__)

# Browsers open about six connections per host.
CONNECTIONS_PER_HOST = 6
MAX_CONNECTIONS = 24

_TAG_RE = re.compile(r"<(script|img|link|source|video|audio|iframe|embed)\b([^>]*)>", re.IGNORECASE | re.DOTALL)


def _attr_re(name: str) -> "re.Pattern":
    return re.compile(
        rf'''(?<![\w-]){name}\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))''',
        re.IGNORECASE,
    )


_SRC_RE = _attr_re("src")
_HREF_RE = _attr_re("href")
_REL_RE = _attr_re("rel")

_EXTENSION_TYPES = {
    ".js": "script", ".mjs": "script",
    ".css": "stylesheet",
    ".png": "image", ".jpg": "image", ".jpeg": "image", ".gif": "image",
    ".webp": "image", ".svg": "image", ".ico": "image", ".avif": "image",
    ".woff": "font", ".woff2": "font", ".ttf": "font", ".otf": "font", ".eot": "font",
    ".mp4": "media", ".webm": "media", ".mp3": "media", ".ogg": "media", ".wav": "media",
    ".json": "fetch",
}
_TAG_TYPES = {
    "script": "script",
    "img": "image",
    "source": "media",
    "video": "media",
    "audio": "media",
    "iframe": "document",
    "embed": "other",
}
# <link rel> values that make the browser load the target during render.
_LOADING_RELS = {"stylesheet", "icon", "apple-touch-icon", "preload", "modulepreload", "manifest"}


def classify_resource(url: str, tag: Optional[str] = None) -> str:
    """Guess a resource type from the referencing tag, then the URL extension."""
    if tag in _TAG_TYPES:
        return _TAG_TYPES[tag]
    path = urlsplit(url).path.lower()
    for extension, resource_type in _EXTENSION_TYPES.items():
        if path.endswith(extension):
            return resource_type
    return "other"


def _attr(pattern: "re.Pattern", attrs: str) -> Optional[str]:
    match = pattern.search(attrs)
    if match is None:
        return None
    return match.group(1) if match.group(1) is not None else match.group(2) or match.group(3)


def _normalize(base_url: str, raw: Optional[str]) -> Optional[str]:
    raw = unescape(raw or "").strip()
    if not raw or raw.startswith(("#", "javascript:", "data:", "blob:", "mailto:", "tel:", "about:")):
        return None
    url = urljoin(base_url, raw)
    if urlsplit(url).scheme not in ("http", "https"):
        return None
    return url.split("#", 1)[0]


def extract_assets(html: str, base_url: str) -> List[Tuple[str, str]]:
    """Return ``(url, resource_type)`` for each distinct asset in ``html``."""
    assets: List[Tuple[str, str]] = []
    seen = set()
    for match in _TAG_RE.finditer(html):
        tag, attrs = match.group(1).lower(), match.group(2)
        if tag == "link":
            rels = set((_attr(_REL_RE, attrs) or "").lower().split())
            if not rels & _LOADING_RELS:
                continue
            url = _normalize(base_url, _attr(_HREF_RE, attrs))
            if "stylesheet" in rels:
                resource_type = "stylesheet"
            elif "manifest" in rels:
                resource_type = "manifest"
            elif rels & {"icon", "apple-touch-icon"}:
                resource_type = "image"
            else:
                resource_type = classify_resource(url or "")
        else:
            url = _normalize(base_url, _attr(_SRC_RE, attrs))
            resource_type = classify_resource(url or "", tag)

        if url is None or url in seen:
            continue
        seen.add(url)
        assets.append((url, resource_type))
    return assets


class HttpPageSession(PageSession):
    """One simulated page load over its own aiohttp session and cookie jar."""

    def __init__(self, session: aiohttp.ClientSession):
        super().__init__()
        self._session = session
        self._ids = itertools.count(1)

    async def navigate(self, url: str, timeout_ms: int) -> None:
        try:
            await asyncio.wait_for(self._load(url), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise NavigationTimeout(url, timeout_ms) from e
        except aiohttp.ClientError as e:
            raise NavigationError(f"{type(e).__name__}: {e}") from e

    async def _load(self, url: str) -> None:
        body, final_url = await self._fetch(url, "document")
        if body is None:
            return
        assets = extract_assets(body, final_url)
        logger.debug("%s references %d assets", final_url, len(assets))
        await asyncio.gather(*[self._fetch_asset(asset_url, kind) for asset_url, kind in assets])

    async def _fetch_asset(self, url: str, resource_type: str) -> None:
        try:
            await self._fetch(url, resource_type)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # A broken asset does not fail the page load.
            logger.debug("Asset %s failed: %s", url, type(e).__name__)

    async def _fetch(self, url: str, resource_type: str) -> Tuple[Optional[str], str]:
        """GET ``url``, emitting lifecycle events. Returns HTML text for documents."""
        key = next(self._ids)
        self._emit_observed(CapturedRequest(key=key, url=url, resource_type=resource_type))
        start = monotonic_ms()
        try:
            async with self._session.get(url, allow_redirects=True) as response:
                raw = await response.read()
                final_url = str(response.url)
                is_html = "html" in (response.content_type or "")
                charset = response.charset or "utf-8"
        except (aiohttp.ClientError, asyncio.TimeoutError):
            self._emit_failed(CapturedRequest(key=key, url=url, resource_type=resource_type,
                                              start_ms=start, end_ms=monotonic_ms()))
            raise

        self._emit_finished(CapturedRequest(key=key, url=url, resource_type=resource_type,
                                            start_ms=start, end_ms=monotonic_ms()))
        if resource_type == "document" and is_html:
            return raw.decode(charset, errors="replace"), final_url
        return None, final_url

    async def wait_for_network_idle(self, timeout_ms: int) -> bool:
        # Every request is awaited inside navigate().
        return True

    async def close(self) -> None:
        await self._session.close()


class HttpProvider(PageSessionProvider):
    """Emulated browsing over aiohttp; needs no browser binary."""

    name = "http"

    def __init__(self, config: SimulationConfig):
        self.config = config

    async def open(self) -> HttpPageSession:
        connector = aiohttp.TCPConnector(
            limit=MAX_CONNECTIONS,
            limit_per_host=CONNECTIONS_PER_HOST,
            enable_cleanup_closed=True,
        )
        session = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.config.page_load_timeout_ms / 1000, connect=10),
            headers={"User-Agent": USER_AGENT, **NO_CACHE_HEADERS},
            cookie_jar=aiohttp.CookieJar(),
        )
        return HttpPageSession(session)
