"""Metrics collection for the polling pipeline."""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

CYCLE_BUCKETS = [0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]


@dataclass
class Histogram:
    """Bucketed observations, last bucket is +Inf."""
    name: str
    buckets: List[float] = field(default_factory=lambda: list(CYCLE_BUCKETS))
    counts: List[int] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.counts:
            self.counts = [0] * (len(self.buckets) + 1)

    def observe(self, value: float):
        self.sum += value
        self.count += 1
        for i, bound in enumerate(self.buckets):
            if value <= bound:
                self.counts[i] += 1
                return
        self.counts[-1] += 1

    @property
    def mean(self) -> float:
        return self.sum / self.count if self.count else 0.0


class MetricsCollector:
    """
    In-process counters, gauges and histograms.

    Nothing is exported; the scheduler logs ``get_summary()`` after every
    cycle.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}
        self._histograms: Dict[str, Histogram] = {}
        self._start_time = time.time()

    def inc(self, name: str, amount: int = 1):
        """Increment a counter."""
        self._counters[name] = self._counters.get(name, 0) + amount

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def set_gauge(self, name: str, value: float):
        self._gauges[name] = value

    def get_gauge(self, name: str) -> float:
        return self._gauges.get(name, 0.0)

    def observe(self, name: str, value: float, buckets: Optional[List[float]] = None):
        """Record an observation in a histogram."""
        histogram = self._histograms.get(name)
        if histogram is None:
            histogram = Histogram(name=name, buckets=buckets or list(CYCLE_BUCKETS))
            self._histograms[name] = histogram
        histogram.observe(value)

    def get_histogram(self, name: str) -> Optional[Histogram]:
        return self._histograms.get(name)

    # === Convenience methods ===

    def record_cycle(self, duration_seconds: float, wallets: int):
        self.inc("cycles_total")
        self.observe("cycle_seconds", duration_seconds)
        self.set_gauge("wallets_tracked", wallets)

    def record_wallet_error(self):
        self.inc("wallet_errors_total")

    def record_tx_processed(self):
        self.inc("tx_processed_total")

    def record_tx_error(self):
        self.inc("tx_errors_total")

    def record_purchase(self):
        self.inc("purchases_total")

    def record_signal(self):
        self.inc("signals_total")

    def record_swap(self, success: bool):
        self.inc("swaps_succeeded_total" if success else "swaps_failed_total")

    def get_summary(self) -> dict:
        """Flat summary for logging."""
        cycle = self._histograms.get("cycle_seconds")
        return {
            "uptime_seconds": time.time() - self._start_time,
            "cycles": self.get_counter("cycles_total"),
            "avg_cycle_seconds": cycle.mean if cycle else 0.0,
            "transactions_processed": self.get_counter("tx_processed_total"),
            "transaction_errors": self.get_counter("tx_errors_total"),
            "wallet_errors": self.get_counter("wallet_errors_total"),
            "purchases": self.get_counter("purchases_total"),
            "signals": self.get_counter("signals_total"),
            "swaps_succeeded": self.get_counter("swaps_succeeded_total"),
            "swaps_failed": self.get_counter("swaps_failed_total"),
            "tracked_mints": self.get_gauge("tracked_mints"),
        }
