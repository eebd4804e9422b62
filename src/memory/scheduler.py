"""Keyed periodic task scheduler with a single-flight guard per key."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


@dataclass
class ScheduledSession(Generic[K]):
    """One registered periodic task. Once cancelled it never fires again."""
    key: K
    interval: float
    handle: asyncio.Task | None = None
    cancelled: bool = False
    ticks: int = 0
    dropped_ticks: int = 0

    def cancel(self) -> None:
        self.cancelled = True
        if self.handle is not None and not self.handle.done():
            self.handle.cancel()


SessionTask = Callable[[ScheduledSession[Any]], Awaitable[None]]


class PeriodicScheduler(Generic[K]):
    """
    Runs at most one periodic task per key on the running event loop.

    Starting a key replaces its previous session in one step. Each tick runs
    as its own task; a tick that fires while an earlier invocation for the
    same key is still running is dropped, not queued. Stopping a key cancels
    pending ticks but lets an invocation already in flight finish.
    """

    def __init__(self) -> None:
        self._sessions: dict[K, ScheduledSession[K]] = {}
        self._in_flight: set[K] = set()
        self._invocations: set[asyncio.Task] = set()

    def start(self, key: K, interval: float, task: SessionTask) -> ScheduledSession[K]:
        self.stop(key)
        session: ScheduledSession[K] = ScheduledSession(key=key, interval=interval)
        session.handle = asyncio.get_running_loop().create_task(
            self._run(session, task), name=f"periodic-{key}"
        )
        self._sessions[key] = session
        return session

    def stop(self, key: K) -> bool:
        """Cancel the session for ``key``. Returns False if none was running."""
        session = self._sessions.pop(key, None)
        if session is None:
            return False
        session.cancel()
        return True

    def current(self, key: K) -> ScheduledSession[K] | None:
        return self._sessions.get(key)

    def is_running(self, key: K) -> bool:
        return key in self._sessions

    def is_in_flight(self, key: K) -> bool:
        return key in self._in_flight

    def keys(self) -> list[K]:
        return list(self._sessions)

    async def run_once(self, key: K, fn: Callable[[], Awaitable[None]]) -> bool:
        """Run ``fn`` unless an invocation for ``key`` is already running.

        Returns True if ``fn`` ran.
        """
        if key in self._in_flight:
            logger.debug(f"Skipping invocation for {key}: previous one still running")
            return False

        self._in_flight.add(key)
        try:
            await fn()
        finally:
            self._in_flight.discard(key)
        return True

    async def shutdown(self) -> None:
        """Cancel every session and any invocation still running."""
        for key in list(self._sessions):
            self.stop(key)
        pending = [t for t in self._invocations if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, session: ScheduledSession[K], task: SessionTask) -> None:
        while not session.cancelled:
            await asyncio.sleep(session.interval)
            if session.cancelled:
                break

            session.ticks += 1
            if session.key in self._in_flight:
                session.dropped_ticks += 1
                logger.debug(f"Dropping tick for {session.key}: previous one still running")
                continue

            invocation = asyncio.get_running_loop().create_task(
                self._invoke(session, task)
            )
            self._invocations.add(invocation)
            invocation.add_done_callback(self._invocations.discard)

    async def _invoke(self, session: ScheduledSession[K], task: SessionTask) -> None:
        if session.cancelled:
            return
        try:
            await self.run_once(session.key, lambda: task(session))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Periodic task for {session.key} failed; will retry next tick")
