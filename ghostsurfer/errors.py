"""
Exception hierarchy for simulated browsing runs.

Only ``ProviderLaunchError`` is fatal. Navigation errors are caught by the
session runner and stored on the ``SessionResult`` as data.
"""


class SurferError(Exception):
    """Base class for all ghostsurfer errors."""


class NavigationError(SurferError):
    """The page-session provider failed to load the target URL."""


class NavigationTimeout(NavigationError):
    """Navigation exceeded the hard page load timeout."""

    def __init__(self, url: str, timeout_ms: int):
        super().__init__(f"Navigation to {url} timed out after {timeout_ms}ms")
        self.url = url
        self.timeout_ms = timeout_ms


class ProviderLaunchError(SurferError):
    """The browsing engine behind a provider could not be started."""
