"""Per-session request timing capture."""

import time
from typing import Callable, Dict, Hashable, List, Optional, Set

from .models import SENTINEL_DURATION, CapturedRequest, RequestRecord, is_network_url


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class TimingReconciler:
    """
    Turns request lifecycle events into at most one ``RequestRecord`` each.

    Owned by a single session; the record list it appends to is that
    session's own buffer.
    """

    def __init__(
        self,
        records: Optional[List[RequestRecord]] = None,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.records: List[RequestRecord] = records if records is not None else []
        self._clock = clock
        self._settled: Set[Hashable] = set()
        self._started_at: Dict[Hashable, float] = {}

    def observe(self, request: CapturedRequest) -> None:
        """Remember when a request was first seen, for the fallback timing."""
        if not is_network_url(request.url):
            return
        self._started_at.setdefault(request.key, self._clock())

    def settle(self, request: CapturedRequest) -> Optional[RequestRecord]:
        """Record a finished or failed request. Repeats are ignored."""
        if not is_network_url(request.url) or request.key in self._settled:
            return None
        self._settled.add(request.key)

        record = RequestRecord(
            url=request.url,
            resource_type=request.resource_type,
            duration=self._duration(request),
        )
        self.records.append(record)
        self._started_at.pop(request.key, None)
        return record

    def _duration(self, request: CapturedRequest) -> float:
        start, end = request.start_ms, request.end_ms
        if start is not None and end is not None and start >= 0 and end >= 0 and end >= start:
            return end - start

        observed_at = self._started_at.get(request.key)
        if observed_at is not None:
            return max(0.0, self._clock() - observed_at)
        return SENTINEL_DURATION
