"""
Page-session provider interface.

A provider owns the browsing engine for the whole run. Each simulated user
gets its own ``PageSession`` from ``open()``; sessions never share mutable
state with each other.
"""

import abc
import asyncio
from typing import Callable, List

from .config import SimulationConfig
from .models import CapturedRequest

RequestCallback = Callable[[CapturedRequest], None]

# A common desktop browser profile. Some sites serve different content, or
# nothing, to obviously automated clients.
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Force every resource over the network so it can be timed.
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class PageSession(abc.ABC):
    """One isolated browsing context driven by a single session runner."""

    def __init__(self):
        self._observed: List[RequestCallback] = []
        self._finished: List[RequestCallback] = []
        self._failed: List[RequestCallback] = []

    def on_request_observed(self, callback: RequestCallback) -> None:
        self._observed.append(callback)

    def on_request_finished(self, callback: RequestCallback) -> None:
        self._finished.append(callback)

    def on_request_failed(self, callback: RequestCallback) -> None:
        self._failed.append(callback)

    def _emit_observed(self, request: CapturedRequest) -> None:
        for callback in self._observed:
            callback(request)

    def _emit_finished(self, request: CapturedRequest) -> None:
        for callback in self._finished:
            callback(request)

    def _emit_failed(self, request: CapturedRequest) -> None:
        for callback in self._failed:
            callback(request)

    @abc.abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None:
        """Load ``url``; raise NavigationTimeout or NavigationError on failure."""

    @abc.abstractmethod
    async def wait_for_network_idle(self, timeout_ms: int) -> bool:
        """Best-effort wait for quiet network. False means the budget ran out."""

    async def wait(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000)

    @abc.abstractmethod
    async def close(self) -> None:
        """Release the context. Called exactly once per session."""


class PageSessionProvider(abc.ABC):
    """Launches the browsing engine and hands out isolated sessions."""

    name = "provider"

    async def start(self) -> None:
        """Acquire the engine. Raise ProviderLaunchError if that is impossible."""

    @abc.abstractmethod
    async def open(self) -> PageSession:
        """Open a fresh, isolated page session."""

    async def stop(self) -> None:
        """Release the engine."""

    async def __aenter__(self) -> "PageSessionProvider":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def create_provider(config: SimulationConfig) -> PageSessionProvider:
    """Build the provider selected by ``config.provider``."""
    if config.provider == "http":
        from .http_provider import HttpProvider
        return HttpProvider(config)

    from .browser_provider import BrowserProvider
    return BrowserProvider(config)
