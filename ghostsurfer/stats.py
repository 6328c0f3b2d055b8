"""
Online statistics over completed sessions.

``StatsAggregator.update`` is the only mutator; every query is a pure read
computed from running ``(sum, count)`` pairs and counters, so averages are
never stored and repeated queries on unchanged state return equal results.
"""

import heapq
import itertools
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import SimulationConfig
from .models import RequestRecord, SessionResult, resolve_domain


@dataclass
class LatencyTotals:
    """Running ``(total_time, count)`` pair for one key."""
    total_time: float = 0
    count: int = 0

    def add(self, duration: float) -> None:
        self.total_time += duration
        self.count += 1

    @property
    def average(self) -> float:
        return self.total_time / self.count if self.count else 0.0


@dataclass(frozen=True)
class OverallStats:
    success_count: int
    error_count: int
    total_requests: int
    avg_requests_per_user: float
    avg_time_in_seconds: float

    @property
    def sessions(self) -> int:
        return self.success_count + self.error_count

    @property
    def success_rate(self) -> float:
        """Percentage of sessions that finished without error."""
        return round(self.success_count / self.sessions * 100, 2) if self.sessions else 0.0

    @property
    def error_rate(self) -> float:
        return round(self.error_count / self.sessions * 100, 2) if self.sessions else 0.0


@dataclass(frozen=True)
class DomainLatency:
    domain: str
    avg_time: float
    count: int


@dataclass(frozen=True)
class DomainAccess:
    domain: str
    count: int


@dataclass(frozen=True)
class UrlLatency:
    url: str
    avg_time: float
    count: int


@dataclass(frozen=True)
class AggregateStatsView:
    """Immutable snapshot handed to sinks."""
    overall: OverallStats
    top_slowest_requests: Tuple[RequestRecord, ...] = ()
    top_domains_by_avg_latency: Tuple[DomainLatency, ...] = ()
    top_domains_by_access: Tuple[DomainAccess, ...] = ()
    top_urls_by_avg_latency: Tuple[UrlLatency, ...] = ()
    resource_types: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    final: bool = False

    def to_dict(self) -> Dict[str, Any]:
        o = self.overall
        return {
            "summary": {
                "sessions": o.sessions,
                "success_count": o.success_count,
                "error_count": o.error_count,
                "total_requests": o.total_requests,
                "avg_requests_per_user": o.avg_requests_per_user,
                "avg_time_seconds": o.avg_time_in_seconds,
                "success_rate_percent": o.success_rate,
                "error_rate_percent": o.error_rate,
            },
            "slowest_requests": [
                {"url": r.url, "resource_type": r.resource_type, "duration_ms": round(r.duration, 2)}
                for r in self.top_slowest_requests
            ],
            "slowest_domains": [
                {"domain": d.domain, "avg_ms": round(d.avg_time, 2), "count": d.count}
                for d in self.top_domains_by_avg_latency
            ],
            "most_accessed_domains": [
                {"domain": d.domain, "count": d.count} for d in self.top_domains_by_access
            ],
            "slowest_urls": [
                {"url": u.url, "avg_ms": round(u.avg_time, 2), "count": u.count}
                for u in self.top_urls_by_avg_latency
            ],
            "resource_types": dict(self.resource_types),
            "final": self.final,
        }


class StatsAggregator:
    """
    Accumulates every ``SessionResult`` of a run.

    Filtering rules, driven by the config:

    * ``total_requests`` and ``resource_type_counts`` see every record.
    * ``domain_access_counts`` see every record whose URL has a hostname;
      records of an excluded resource type are left out only when
      ``exclude_from_access_counts`` is set.
    * Latency views (domain averages, URL averages, slowest requests) only
      see measured records (duration >= 0) of a non-excluded resource type
      on a non-excluded domain. URL averages and slowest requests also
      require ``min_duration_for_slowest_ms``.

    Slowest-request history is bounded by ``max_retained_requests`` (0 keeps
    everything); the bound keeps the slowest records, earlier ones winning
    ties, so top-K answers stay exact for K up to the bound.
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()
        self.success_count = 0
        self.error_count = 0
        self.total_load_time: float = 0
        self.total_requests = 0
        self.domain_stats: Dict[str, LatencyTotals] = {}
        self.domain_access_counts: Dict[str, int] = {}
        self.url_stats: Dict[str, LatencyTotals] = {}
        self.resource_type_counts: Dict[str, int] = {}
        # (duration, -sequence, record); a min-heap when bounded.
        self._retained: List[Tuple[float, int, RequestRecord]] = []
        self._sequence = itertools.count()

    # =========================================================================
    # Mutation
    # =========================================================================

    def update(self, result: SessionResult) -> None:
        """Fold one completed session into the running totals."""
        if result.error is not None:
            self.error_count += 1
        else:
            self.success_count += 1
            self.total_load_time += result.load_time

        self.total_requests += len(result.requests)
        for record in result.requests:
            self._add_request(record)

    def _add_request(self, record: RequestRecord) -> None:
        config = self.config
        if record.resource_type:
            self.resource_type_counts[record.resource_type] = self.resource_type_counts.get(record.resource_type, 0) + 1

        excluded_type = record.resource_type in config.exclude_resource_types
        domain = resolve_domain(record.url)
        if domain is not None and not (excluded_type and config.exclude_from_access_counts):
            self.domain_access_counts[domain] = self.domain_access_counts.get(domain, 0) + 1

        if not record.measured or excluded_type or domain in config.excluded_domains:
            return
        if domain is not None:
            self.domain_stats.setdefault(domain, LatencyTotals()).add(record.duration)

        if record.duration < config.min_duration_for_slowest_ms:
            return
        self.url_stats.setdefault(record.url, LatencyTotals()).add(record.duration)
        self._retain(record)

    def _retain(self, record: RequestRecord) -> None:
        entry = (record.duration, -next(self._sequence), record)
        limit = self.config.max_retained_requests
        if not limit:
            self._retained.append(entry)
        elif len(self._retained) < limit:
            heapq.heappush(self._retained, entry)
        else:
            heapq.heappushpop(self._retained, entry)

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def retained_requests(self) -> List[RequestRecord]:
        """Records eligible for slowest ranking, in arrival order."""
        return [record for _, _, record in sorted(self._retained, key=lambda e: -e[1])]

    def overall_stats(self) -> OverallStats:
        sessions = self.success_count + self.error_count
        return OverallStats(
            success_count=self.success_count,
            error_count=self.error_count,
            total_requests=self.total_requests,
            avg_requests_per_user=round(self.total_requests / sessions, 2) if sessions else 0.0,
            avg_time_in_seconds=(
                round(self.total_load_time / self.success_count / 1000, 2) if self.success_count else 0.0
            ),
        )

    def top_slowest_requests(self, k: int) -> List[RequestRecord]:
        """The ``k`` longest requests, earlier arrivals first on equal duration."""
        if k <= 0:
            return []
        ranked = sorted(self._retained, key=lambda e: (-e[0], -e[1]))
        return [record for _, _, record in ranked[:k]]

    def top_domains_by_access(self, k: int) -> List[DomainAccess]:
        if k <= 0:
            return []
        ranked = sorted(self.domain_access_counts.items(), key=lambda item: item[1], reverse=True)
        return [DomainAccess(domain, count) for domain, count in ranked[:k]]

    def top_domains_by_avg_latency(self, k: int) -> List[DomainLatency]:
        if k <= 0:
            return []
        ranked = sorted(self.domain_stats.items(), key=lambda item: item[1].average, reverse=True)
        return [DomainLatency(domain, totals.average, totals.count) for domain, totals in ranked[:k]]

    def top_urls_by_avg_latency(self, k: int) -> List[UrlLatency]:
        if k <= 0:
            return []
        ranked = sorted(self.url_stats.items(), key=lambda item: item[1].average, reverse=True)
        return [UrlLatency(url, totals.average, totals.count) for url, totals in ranked[:k]]

    def resource_type_histogram(self) -> Dict[str, int]:
        return dict(self.resource_type_counts)

    def view(self, final: bool = False, top_n: Optional[int] = None) -> AggregateStatsView:
        """Snapshot the current state for sinks."""
        k = self.config.top_n if top_n is None else top_n
        return AggregateStatsView(
            overall=self.overall_stats(),
            top_slowest_requests=tuple(self.top_slowest_requests(k)),
            top_domains_by_avg_latency=tuple(self.top_domains_by_avg_latency(k)),
            top_domains_by_access=tuple(self.top_domains_by_access(k)),
            top_urls_by_avg_latency=tuple(self.top_urls_by_avg_latency(k)),
            resource_types=MappingProxyType(self.resource_type_histogram()),
            final=final,
        )
