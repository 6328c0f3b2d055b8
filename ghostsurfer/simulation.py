"""Wires provider, scheduler, aggregator and sink into one run."""

import logging
from typing import Optional

from .config import SimulationConfig
from .providers import PageSessionProvider, create_provider
from .scheduler import SessionScheduler
from .sinks import Sink, create_sink
from .stats import AggregateStatsView, StatsAggregator

logger = logging.getLogger(__name__)


async def run_simulation(
    config: SimulationConfig,
    provider: Optional[PageSessionProvider] = None,
    sink: Optional[Sink] = None,
) -> AggregateStatsView:
    """
    Run ``config.total_users`` sessions and return the final aggregate view.

    Raises ProviderLaunchError when the browsing engine cannot be started;
    nothing else about individual sessions stops the run.
    """
    provider = provider or create_provider(config)
    aggregator = StatsAggregator(config)

    await provider.start()
    try:
        sink = sink or create_sink(config)
        try:
            sink.message(f"Starting {config.total_users} sessions against {config.url}")
            scheduler = SessionScheduler(provider, config, aggregator, sink)
            await scheduler.run()
            logger.debug("Peak concurrent sessions: %d", scheduler.peak_active)

            final = aggregator.view(final=True)
            sink.snapshot(final)
            return final
        finally:
            sink.close()
    finally:
        await provider.stop()
