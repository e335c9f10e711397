"""Periodic spread watching with change suppression.

A :class:`SpreadWatcher` owns one subscription: a destination to notify, an
asyncio task acting as the timer, and the last signature it emitted. Each
cycle runs the detection callable and compares its text against that memory:

* same text as last time: nothing is sent;
* different non-empty text: the destination is notified;
* empty text (no spread): the memory is cleared silently.

Cycles never overlap. A cycle that finishes after ``stop()`` (or after a
stop/start pair) is discarded, so it cannot re-arm notification state.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

from p2pwatch.data.models import MalformedAdvertisementError
from p2pwatch.data.p2p_client import MarketplaceError
from p2pwatch.infra.metrics import MetricsSink

Detection = Callable[[], Awaitable[str]]
Notifier = Callable[[str, str], Union[None, Awaitable[None]]]

DEFAULT_PERIOD_SECONDS = 60.0


class StartResult(str, Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already_running"


class StopResult(str, Enum):
    STOPPED = "stopped"
    NOT_RUNNING = "not_running"


@dataclass
class WatchState:
    """Mutable state of one subscription.

    ``generation`` increases on every start and stop; cycles remember the
    generation they began under and are ignored once it moves on.
    """

    active: bool = False
    destination: Optional[str] = None
    task: Optional["asyncio.Task[None]"] = None
    last_signature: str = ""
    generation: int = 0


class SpreadWatcher:
    """Run a detection callable on a fixed period and push changed results."""

    def __init__(
        self,
        detect: Detection,
        notify: Notifier,
        period: float = DEFAULT_PERIOD_SECONDS,
        metrics: Optional[MetricsSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self._detect = detect
        self._notify = notify
        self.period = period
        self.metrics = metrics
        self.logger = logger or logging.getLogger(__name__)
        self.state = WatchState()
        self._in_flight: Optional[int] = None

    @property
    def active(self) -> bool:
        return self.state.active

    async def start(self, destination: str) -> StartResult:
        """Begin watching for ``destination``.

        Runs one cycle right away, then arms the periodic timer. Calling it
        while already active changes nothing.
        """

        if self.state.active:
            self.logger.info(
                "Watcher already running for %s", self.state.destination,
                extra={"event": "watch_already_running", "destination": self.state.destination},
            )
            return StartResult.ALREADY_RUNNING

        self.state.active = True
        self.state.destination = destination
        self.state.generation += 1
        generation = self.state.generation
        self.logger.info(
            "Watcher started for %s", destination,
            extra={"event": "watch_started", "destination": destination, "period_seconds": self.period},
        )

        try:
            await self.run_cycle()
        except (MarketplaceError, MalformedAdvertisementError) as exc:
            self._log_cycle_failure(exc)
        except Exception as exc:
            self._log_unexpected_failure(exc)

        if self.state.active and self.state.generation == generation:
            self.state.task = asyncio.create_task(self._tick_loop(generation))
        return StartResult.STARTED

    async def stop(self) -> StopResult:
        """Cancel the timer and forget the last signature."""

        if not self.state.active:
            return StopResult.NOT_RUNNING

        task = self.state.task
        destination = self.state.destination
        self.state = WatchState(generation=self.state.generation + 1)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.logger.info("Watcher stopped for %s", destination, extra={"event": "watch_stopped", "destination": destination})
        return StopResult.STOPPED

    async def run_cycle(self) -> Optional[str]:
        """Run one detection and apply it; return the text that was sent, if any.

        Returns ``None`` without detecting when the watcher is idle or when a
        cycle of the current generation is still running.

        Raises:
            MarketplaceTransportError: the marketplace could not be reached.
        """

        if not self.state.active:
            return None
        generation = self.state.generation
        if self._in_flight == generation:
            self.logger.warning("Previous cycle still running, skipping tick", extra={"event": "cycle_skipped"})
            self._incr("cycles_skipped_total")
            return None

        self._in_flight = generation
        try:
            signature = await self._detect()
        finally:
            if self._in_flight == generation:
                self._in_flight = None

        if not self.state.active or self.state.generation != generation:
            self.logger.debug("Discarding result of a cycle from a stopped watcher", extra={"event": "cycle_discarded"})
            return None
        return await self._apply(signature)

    async def _apply(self, signature: str) -> Optional[str]:
        self._incr("cycles_total")
        if signature == self.state.last_signature:
            if signature:
                self.logger.debug(
                    "Opportunity unchanged, not notifying", extra={"event": "notification_suppressed"}
                )
                self._incr("notifications_suppressed_total")
            return None

        if not signature:
            self.state.last_signature = signature
            return None

        # memory only advances on delivery so a failed send is retried next cycle
        destination = self.state.destination or ""
        generation = self.state.generation
        try:
            result = self._notify(destination, signature)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self.logger.exception("Notifier failed for %s", destination, extra={"event": "notification_failed"})
            self._incr("notifications_failed_total")
            return None

        if self.state.generation == generation:
            self.state.last_signature = signature
        self.logger.info("Notified %s", destination, extra={"event": "notification", "destination": destination})
        self._incr("notifications_total")
        return signature

    async def _tick_loop(self, generation: int) -> None:
        while self.state.active and self.state.generation == generation:
            await asyncio.sleep(self.period)
            try:
                await self.run_cycle()
            except (MarketplaceError, MalformedAdvertisementError) as exc:
                self._log_cycle_failure(exc)
            except Exception as exc:
                self._log_unexpected_failure(exc)

    def _log_unexpected_failure(self, exc: Exception) -> None:
        self.logger.exception(
            "Detection cycle crashed: %s", exc,
            extra={"event": "cycle_crashed", "destination": self.state.destination, "error": type(exc).__name__},
        )
        self._incr("cycles_failed_total")

    def _log_cycle_failure(self, exc: Exception) -> None:
        self.logger.error(
            "Detection cycle failed: %s", exc,
            extra={"event": "cycle_failed", "destination": self.state.destination, "error": type(exc).__name__},
        )
        self._incr("cycles_failed_total")

    def _incr(self, name: str) -> None:
        if self.metrics is not None:
            self.metrics.incr(name)


class WatcherRegistry:
    """One independent :class:`SpreadWatcher` per destination."""

    def __init__(self, factory: Callable[[], SpreadWatcher]) -> None:
        self._factory = factory
        self._watchers: Dict[str, SpreadWatcher] = {}

    def get(self, destination: str) -> SpreadWatcher:
        watcher = self._watchers.get(destination)
        if watcher is None:
            watcher = self._watchers[destination] = self._factory()
        return watcher

    async def start(self, destination: str) -> StartResult:
        return await self.get(destination).start(destination)

    async def stop(self, destination: str) -> StopResult:
        watcher = self._watchers.get(destination)
        if watcher is None:
            return StopResult.NOT_RUNNING
        return await watcher.stop()

    def active_destinations(self) -> List[str]:
        return sorted(name for name, watcher in self._watchers.items() if watcher.active)

    async def stop_all(self) -> None:
        for watcher in list(self._watchers.values()):
            await watcher.stop()


__all__ = [
    "DEFAULT_PERIOD_SECONDS",
    "SpreadWatcher",
    "StartResult",
    "StopResult",
    "WatchState",
    "WatcherRegistry",
]
