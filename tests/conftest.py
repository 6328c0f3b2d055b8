"""Fakes for the page-session provider and a controllable clock."""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import pytest

from ghostsurfer.config import SimulationConfig
from ghostsurfer.errors import NavigationTimeout, ProviderLaunchError
from ghostsurfer.models import CapturedRequest, RequestRecord, SessionResult
from ghostsurfer.providers import PageSession, PageSessionProvider
from ghostsurfer.sinks import Sink

# (event kind, request, ms to advance the clock before emitting)
Event = Tuple[str, CapturedRequest, float]


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@dataclass
class PageScript:
    """How a fake page behaves when a session drives it."""
    events: List[Event] = field(default_factory=list)
    navigate_ms: float = 100
    navigate_error: Optional[Exception] = None
    idle: bool = True
    # Delivered on the next wait() call, like events queued during drain.
    late_events: List[Event] = field(default_factory=list)
    wait_error: Optional[Exception] = None
    close_error: Optional[Exception] = None
    # Real seconds to yield inside navigate, to let sessions interleave.
    real_delay: float = 0.0


class FakePageSession(PageSession):
    def __init__(self, clock: FakeClock, script: PageScript, provider: "FakeProvider"):
        super().__init__()
        self.clock = clock
        self.script = script
        self.provider = provider
        self.navigated_to: Optional[str] = None
        self.idle_budget: Optional[int] = None
        self.waits: List[int] = []
        self.close_calls = 0

    def _play(self, events: List[Event]) -> None:
        for kind, request, advance in events:
            self.clock.advance(advance)
            if kind == "observed":
                self._emit_observed(request)
            elif kind == "finished":
                self._emit_finished(request)
            else:
                self._emit_failed(request)

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self.navigated_to = url
        started = self.clock()
        await asyncio.sleep(self.script.real_delay)
        self._play(self.script.events)
        if self.script.navigate_error is not None:
            raise self.script.navigate_error
        if self.script.navigate_ms > timeout_ms:
            self.clock.now = started + timeout_ms
            raise NavigationTimeout(url, timeout_ms)
        self.clock.now = max(self.clock.now, started + self.script.navigate_ms)

    async def wait_for_network_idle(self, timeout_ms: int) -> bool:
        self.idle_budget = timeout_ms
        if not self.script.idle:
            self.clock.advance(timeout_ms)
        return self.script.idle

    async def wait(self, ms: int) -> None:
        self.waits.append(ms)
        await asyncio.sleep(0)
        if self.script.wait_error is not None:
            raise self.script.wait_error
        self.clock.advance(ms)
        late, self.script.late_events = self.script.late_events, []
        self._play(late)

    async def close(self) -> None:
        self.close_calls += 1
        self.provider.active -= 1
        if self.script.close_error is not None:
            raise self.script.close_error


class FakeProvider(PageSessionProvider):
    """Hands out scripted sessions and tracks how many are open at once."""

    name = "fake"

    def __init__(
        self,
        script_for: Optional[Callable[[int], PageScript]] = None,
        clock: Optional[FakeClock] = None,
        fail_open: Callable[[int], bool] = lambda n: False,
        fail_start: bool = False,
        open_ms: float = 0,
    ):
        self.script_for = script_for or (lambda n: PageScript())
        self.clock = clock or FakeClock()
        self.fail_open = fail_open
        self.fail_start = fail_start
        self.open_ms = open_ms
        self.sessions: List[FakePageSession] = []
        self.opened = 0
        self.active = 0
        self.peak_active = 0
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        if self.fail_start:
            raise ProviderLaunchError("engine missing")
        self.started = True

    async def open(self) -> FakePageSession:
        self.opened += 1
        self.clock.advance(self.open_ms)
        if self.fail_open(self.opened):
            raise RuntimeError("context creation failed")
        session = FakePageSession(self.clock, self.script_for(self.opened), self)
        self.sessions.append(session)
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        return session

    async def stop(self) -> None:
        self.stopped = True


class RecordingSink(Sink):
    """Remembers every call; checks the aggregator was updated first."""

    def __init__(self, aggregator=None):
        self.aggregator = aggregator
        self.results: List[SessionResult] = []
        self.views = []
        self.sessions_seen_at_consume: List[int] = []
        self.messages: List[str] = []
        self.closed = False

    def consume(self, result: SessionResult) -> None:
        self.results.append(result)
        if self.aggregator is not None:
            o = self.aggregator.overall_stats()
            self.sessions_seen_at_consume.append(o.success_count + o.error_count)

    def snapshot(self, view) -> None:
        self.views.append(view)

    def message(self, text: str) -> None:
        self.messages.append(text)

    def close(self) -> None:
        self.closed = True


def request(key, url, resource_type="script", start=None, end=None) -> CapturedRequest:
    return CapturedRequest(key=key, url=url, resource_type=resource_type, start_ms=start, end_ms=end)


def record(url="https://a.example/x", resource_type="script", duration=100.0) -> RequestRecord:
    return RequestRecord(url=url, resource_type=resource_type, duration=duration)


def result(user_id=1, load_time=1000.0, requests=None, error=None) -> SessionResult:
    return SessionResult(
        user_id=user_id,
        url="https://a.example/",
        load_time=load_time,
        requests=list(requests or []),
        error=error,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(now=1000.0)


@pytest.fixture
def config() -> SimulationConfig:
    return SimulationConfig(
        url="https://a.example/",
        total_users=3,
        concurrency=2,
        wait_ms=0,
        page_load_timeout_ms=5000,
        network_idle_timeout_ms=15000,
        drain_ms=500,
    )
