"""Core application modules."""

from .monitoring import MetricsCollector
from .scheduler import PollingScheduler, SchedulerState
from .ttl_cache import SignatureCache

__all__ = [
    "MetricsCollector",
    "PollingScheduler",
    "SchedulerState",
    "SignatureCache",
]
