"""Data records produced by a simulation run."""

from dataclasses import dataclass, field
from typing import Hashable, List, Optional
from urllib.parse import urlsplit

# Marks a request whose duration could not be measured. Never a real 0ms.
SENTINEL_DURATION: float = -1

# Schemes that never cross the network and are not worth timing.
NON_NETWORK_SCHEMES = ("data:", "blob:")


def resolve_domain(url: str) -> Optional[str]:
    """Return the lower-cased hostname of ``url`` or None when it has none."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    return hostname or None


def is_network_url(url: str) -> bool:
    return not url.lower().startswith(NON_NETWORK_SCHEMES)


@dataclass
class CapturedRequest:
    """
    A request lifecycle event as delivered by a page session.

    ``key`` identifies the underlying request across its observed and
    finished/failed events. ``start_ms``/``end_ms`` are the engine's precise
    timing endpoints when it has them.
    """
    key: Hashable
    url: str
    resource_type: str = "other"
    start_ms: Optional[float] = None
    end_ms: Optional[float] = None


@dataclass(frozen=True)
class RequestRecord:
    """One measured (or unmeasurable) request of a session."""
    url: str
    resource_type: str
    duration: float = SENTINEL_DURATION

    @property
    def domain(self) -> Optional[str]:
        return resolve_domain(self.url)

    @property
    def measured(self) -> bool:
        return self.duration >= 0


@dataclass
class SessionResult:
    """Outcome of one simulated user, produced exactly once per session."""
    user_id: int
    url: str
    load_time: float
    requests: List[RequestRecord] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__
