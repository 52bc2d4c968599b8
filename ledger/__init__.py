"""Ledger access module."""

from .client import (
    LedgerClient,
    LedgerError,
    RpcError,
    TransactionFailed,
    ConfirmationTimeout,
    decode_account_data,
)

__all__ = [
    "LedgerClient",
    "LedgerError",
    "RpcError",
    "TransactionFailed",
    "ConfirmationTimeout",
    "decode_account_data",
]
