"""Data models for Copycat."""

from .events import (
    PurchaseEvent,
    SwapSignal,
    SwapRequest,
    UnitConfirmation,
    SwapResult,
)

__all__ = [
    "PurchaseEvent",
    "SwapSignal",
    "SwapRequest",
    "UnitConfirmation",
    "SwapResult",
]
