"""In-memory counters and gauges for the watcher and client."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass
class MetricsSink:
    """Collects counters and gauges; safe to call from worker threads."""

    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("p2pwatch.metrics"))
    _lock: threading.Lock = field(init=False, repr=False, default_factory=threading.Lock)

    def incr(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + value

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = float(value)

    def observe(self, name: str, values: Mapping[str, Any]) -> None:
        """Count an event named ``name`` and keep its numeric values as gauges.

        Signature matches the ``metrics_callback`` hook of
        :class:`~p2pwatch.data.p2p_client.P2PClient`.
        """

        with self._lock:
            counter = f"{name}_total"
            self.counters[counter] = self.counters.get(counter, 0) + 1
            for key, value in values.items():
                if isinstance(value, (int, float)):
                    self.gauges[f"{name}_{key}"] = float(value)
        self.logger.debug(name, extra={"event": name, **dict(values)})

    def export(self) -> Dict[str, float | int]:
        with self._lock:
            return {**self.counters, **self.gauges}


__all__ = ["MetricsSink"]
