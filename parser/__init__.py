"""Parser module for transaction analysis."""

from .purchases import (
    extract_purchases,
    balance_changes,
    parse_ui_amount,
    WSOL_MINT,
    QUOTE_MINTS,
)

__all__ = [
    "extract_purchases",
    "balance_changes",
    "parse_ui_amount",
    "WSOL_MINT",
    "QUOTE_MINTS",
]
