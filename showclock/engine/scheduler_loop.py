"""Async polling loop -- starts due timers on a fixed period.

The loop is started/stopped by the FastAPI lifespan handler and runs as a
background ``asyncio.Task``.  Each tick, for every event that has not
completed, it:

1. Calls ``timer_engine.check_and_start_if_due()`` to start the first due
   durational timer when the event has no current timer.
2. Calls ``timer_engine.check_and_start_punctual()`` once, starting at most
   one overdue punctual timer.  A backlog drains one timer per tick.

Both checks are idempotent; a tick that finds nothing to do is harmless.
"""
import asyncio
import logging

from showclock.engine import repository, timer_engine
from showclock.engine.errors import EngineError

log = logging.getLogger(__name__)


class SchedulerLoop:
    """Background poller for due timers."""

    def __init__(self, session_factory, notifier, interval: float = 30.0) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.interval = interval
        self._running: bool = False
        self._task: asyncio.Task | None = None
        self.tick_count: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        log.info("Scheduler loop started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("Scheduler loop stopped")

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        """Run until ``_running`` is set to False or the task is cancelled."""
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Unhandled error in scheduler tick")

    async def tick(self) -> list[dict]:
        """Poll every active event once; returns the timers started."""
        self.tick_count += 1
        started: list[dict] = []

        async with self.session_factory() as db:
            event_ids = await repository.find_active_event_ids(db)

        for event_id in event_ids:
            # One session per event so a failing event cannot poison the rest.
            async with self.session_factory() as db:
                try:
                    due = await timer_engine.check_and_start_if_due(db, self.notifier, event_id)
                    if due["started"]:
                        started.append({"event_id": event_id, **due})
                    punctual = await timer_engine.check_and_start_punctual(
                        db, self.notifier, event_id
                    )
                    if punctual["started"]:
                        started.append({"event_id": event_id, **punctual})
                except EngineError as exc:
                    await db.rollback()
                    log.warning("Polling event %s failed: %s", event_id, exc)

        if started:
            log.info("Scheduler tick %d started %d timer(s)", self.tick_count, len(started))
        return started
