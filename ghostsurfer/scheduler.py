"""Bounded-concurrency scheduling of session runners."""

import asyncio
import logging
from typing import Callable, List, Optional

from .config import SimulationConfig
from .models import SessionResult
from .providers import PageSessionProvider
from .runner import SessionRunner
from .sinks import Sink
from .stats import StatsAggregator
from .timing import monotonic_ms

logger = logging.getLogger(__name__)

RunnerFactory = Callable[[PageSessionProvider, SimulationConfig, int], SessionRunner]


class SessionScheduler:
    """
    Runs ``total_users`` sessions with at most ``concurrency`` in flight.

    Sessions are admitted in user-id order as slots free up. Each completed
    result updates the aggregator first and only then reaches the sink, all
    without yielding to the event loop, so the aggregator is never updated
    by two completions at once.
    """

    def __init__(
        self,
        provider: PageSessionProvider,
        config: SimulationConfig,
        aggregator: StatsAggregator,
        sink: Sink,
        runner_factory: Optional[RunnerFactory] = None,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.provider = provider
        self.config = config
        self.aggregator = aggregator
        self.sink = sink
        self.runner_factory = runner_factory or SessionRunner
        self._clock = clock

        self.active = 0
        self.peak_active = 0
        self.completed = 0

    async def run(self) -> List[SessionResult]:
        """Run every session to a terminal state. Returns results in completion order."""
        semaphore = asyncio.Semaphore(self.config.concurrency)
        results: List[SessionResult] = []

        async def run_one(user_id: int):
            async with semaphore:
                self.active += 1
                self.peak_active = max(self.peak_active, self.active)
                try:
                    result = await self._run_session(user_id)
                finally:
                    self.active -= 1
            self._publish(result)
            results.append(result)

        tasks = [asyncio.ensure_future(run_one(user_id)) for user_id in range(1, self.config.total_users + 1)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return results

    async def _run_session(self, user_id: int) -> SessionResult:
        started = self._clock()
        try:
            runner = self.runner_factory(self.provider, self.config, user_id)
            return await runner.run()
        except Exception as e:
            logger.exception("User %d: runner raised unexpectedly", user_id)
            return SessionResult(
                user_id=user_id,
                url=self.config.url,
                load_time=max(0.0, self._clock() - started),
                requests=[],
                error=e,
            )

    def _publish(self, result: SessionResult) -> None:
        self.aggregator.update(result)
        self.completed += 1
        self.sink.consume(result)
        self.sink.snapshot(self.aggregator.view())
