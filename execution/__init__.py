"""Swap execution module."""

from .keys import load_keypair
from .swap import SwapExecutor, SwapError, PoolError, AccountLookupError

__all__ = [
    "load_keypair",
    "SwapExecutor",
    "SwapError",
    "PoolError",
    "AccountLookupError",
]
