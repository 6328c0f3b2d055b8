"""One simulated user: navigate, settle, dwell, drain."""

import logging
from enum import Enum
from typing import Callable, List, Optional

from .config import SimulationConfig
from .models import RequestRecord, SessionResult
from .providers import PageSession, PageSessionProvider
from .timing import TimingReconciler, monotonic_ms

logger = logging.getLogger(__name__)


class SessionState(Enum):
    CREATED = "created"
    NAVIGATING = "navigating"
    NAVIGATION_SETTLED = "navigation_settled"
    NAVIGATION_FAILED = "navigation_failed"
    WAITING_NETWORK_IDLE = "waiting_network_idle"
    EXPLICIT_WAIT = "explicit_wait"
    DRAINING = "draining"
    FINISHED = "finished"


class SessionRunner:
    """
    Drives a single session against the page-session provider.

    ``run()`` always returns a ``SessionResult``; any failure along the way
    becomes the result's ``error`` and the requests captured so far are kept.
    A runner is used for exactly one session and shares nothing with others.
    """

    def __init__(
        self,
        provider: PageSessionProvider,
        config: SimulationConfig,
        user_id: int,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.provider = provider
        self.config = config
        self.user_id = user_id
        self.state = SessionState.CREATED
        self.history: List[SessionState] = [SessionState.CREATED]
        self.records: List[RequestRecord] = []
        self._clock = clock

    def _transition(self, state: SessionState) -> None:
        logger.debug("User %d: %s -> %s", self.user_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    async def run(self) -> SessionResult:
        reconciler = TimingReconciler(self.records, clock=self._clock)
        opening = self._clock()

        try:
            session = await self.provider.open()
        except Exception as e:
            logger.debug("User %d: could not open a page session: %s", self.user_id, e)
            self._transition(SessionState.FINISHED)
            return self._result(self._clock() - opening, e)

        session.on_request_observed(reconciler.observe)
        session.on_request_finished(reconciler.settle)
        session.on_request_failed(reconciler.settle)
        try:
            # Load time counts from navigation, not from context setup.
            return await self._drive(session, self._clock())
        finally:
            await self._release(session)

    async def _drive(self, session: PageSession, started: float) -> SessionResult:
        config = self.config
        error: Optional[BaseException] = None
        load_time: Optional[float] = None

        try:
            self._transition(SessionState.NAVIGATING)
            await session.navigate(config.url, config.page_load_timeout_ms)
            self._transition(SessionState.NAVIGATION_SETTLED)

            self._transition(SessionState.WAITING_NETWORK_IDLE)
            if not await session.wait_for_network_idle(config.network_idle_timeout_ms):
                # Most requests are captured by now; carry on.
                logger.debug("User %d: network still busy after %dms", self.user_id, config.network_idle_timeout_ms)

            if config.wait_ms > 0:
                self._transition(SessionState.EXPLICIT_WAIT)
                await session.wait(config.wait_ms)
        except Exception as e:
            error = e
            load_time = self._clock() - started
            if self.state is SessionState.NAVIGATING:
                self._transition(SessionState.NAVIGATION_FAILED)
            logger.debug("User %d failed: %s", self.user_id, e)

        # Let finished/failed events already queued reach the reconciler
        # before the context goes away.
        self._transition(SessionState.DRAINING)
        try:
            await session.wait(config.drain_ms)
        except Exception as e:
            logger.debug("User %d: drain wait interrupted: %s", self.user_id, e)

        if load_time is None:
            load_time = self._clock() - started
        self._transition(SessionState.FINISHED)
        return self._result(load_time, error)

    async def _release(self, session: PageSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning("User %d: error closing page session: %s", self.user_id, e)

    def _result(self, load_time: float, error: Optional[BaseException]) -> SessionResult:
        return SessionResult(
            user_id=self.user_id,
            url=self.config.url,
            load_time=max(0.0, load_time),
            requests=list(self.records),
            error=error,
        )
