"""Simulated browsing sessions with per-request timing statistics."""

from .config import SimulationConfig
from .errors import NavigationError, NavigationTimeout, ProviderLaunchError, SurferError
from .models import SENTINEL_DURATION, CapturedRequest, RequestRecord, SessionResult
from .providers import PageSession, PageSessionProvider, create_provider
from .runner import SessionRunner, SessionState
from .scheduler import SessionScheduler
from .simulation import run_simulation
from .sinks import CompositeSink, LogFileSink, ProgressSink, Sink, create_sink
from .stats import AggregateStatsView, OverallStats, StatsAggregator
from .timing import TimingReconciler

__version__ = "1.0.0"

__all__ = [
    "AggregateStatsView",
    "CapturedRequest",
    "CompositeSink",
    "LogFileSink",
    "NavigationError",
    "NavigationTimeout",
    "OverallStats",
    "PageSession",
    "PageSessionProvider",
    "ProgressSink",
    "ProviderLaunchError",
    "RequestRecord",
    "SENTINEL_DURATION",
    "SessionResult",
    "SessionRunner",
    "SessionScheduler",
    "SessionState",
    "Sink",
    "StatsAggregator",
    "SurferError",
    "TimingReconciler",
    "create_provider",
    "create_sink",
    "run_simulation",
]
