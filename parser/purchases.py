"""Purchase extraction from confirmed transactions."""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.events import PurchaseEvent

logger = logging.getLogger(__name__)

# Constants
WSOL_MINT = "So11111111111111111111111111111111111111112"

# Quote mints are what wallets pay with, not what they buy
QUOTE_MINTS = frozenset({
    "So11111111111111111111111111111111111111112",  # WSOL
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",  # USDC
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",  # USDT
})


def parse_ui_amount(ui_token_amount: Optional[Dict[str, Any]]) -> Optional[Decimal]:
    """
    Parse a uiTokenAmount object into a Decimal.

    Prefers the exact ``uiAmountString``, then ``uiAmount``, then the raw
    integer ``amount`` scaled by ``decimals``. Returns None when nothing
    usable is present.
    """
    if not isinstance(ui_token_amount, dict):
        return None

    try:
        ui_string = ui_token_amount.get("uiAmountString")
        if ui_string not in (None, ""):
            return Decimal(str(ui_string))

        ui_amount = ui_token_amount.get("uiAmount")
        if ui_amount is not None:
            return Decimal(str(ui_amount))

        raw = ui_token_amount.get("amount")
        if raw not in (None, ""):
            decimals = int(ui_token_amount.get("decimals", 0))
            return Decimal(int(raw)).scaleb(-decimals)
    except (InvalidOperation, ValueError, TypeError) as e:
        logger.debug(f"Unparseable token amount {ui_token_amount}: {e}")

    return None


def _balances_for_owner(
    entries: Iterable[Any],
    owner: str,
) -> Dict[str, Decimal]:
    """Sum token balances per mint for one owner."""
    result: Dict[str, Decimal] = {}

    for entry in entries or []:
        if not isinstance(entry, dict) or entry.get("owner") != owner:
            continue
        mint = entry.get("mint")
        if not mint:
            continue
        amount = parse_ui_amount(entry.get("uiTokenAmount"))
        if amount is None:
            continue
        result[mint] = result.get(mint, Decimal(0)) + amount

    return result


def _signature_of(record: Dict[str, Any]) -> str:
    signatures = (record.get("transaction") or {}).get("signatures") or []
    return signatures[0] if signatures else ""


def balance_changes(
    record: Optional[Dict[str, Any]],
    wallet: str,
) -> Dict[str, Tuple[Decimal, Decimal]]:
    """
    Pre and post balances per mint for ``wallet``.

    Only mints that appear in the post balances are returned; a mint with no
    pre balance entry had a zero balance (the token account was opened by
    this transaction).
    """
    if not record:
        return {}
    meta = record.get("meta")
    if not isinstance(meta, dict) or not meta.get("postTokenBalances"):
        return {}

    pre = _balances_for_owner(meta.get("preTokenBalances"), wallet)
    post = _balances_for_owner(meta.get("postTokenBalances"), wallet)

    return {
        mint: (pre.get(mint, Decimal(0)), post_amount)
        for mint, post_amount in post.items()
    }


def extract_purchases(
    record: Optional[Dict[str, Any]],
    wallet: str,
    ignore_mints: Iterable[str] = (),
) -> List[PurchaseEvent]:
    """
    Find the mints whose balance ``wallet`` increased in ``record``.

    Args:
        record: ``getTransaction`` result (may be None)
        wallet: Tracked wallet address (token balance owner)
        ignore_mints: Mints never reported as purchases

    Returns:
        One PurchaseEvent per mint with post amount strictly greater than
        the pre amount. Missing metadata and failed transactions yield [].
    """
    if not record:
        return []
    meta = record.get("meta")
    if not isinstance(meta, dict) or meta.get("err") is not None:
        return []

    ignored = frozenset(ignore_mints)
    observed_at = record.get("blockTime") or time.time()
    signature = _signature_of(record)

    events = []
    for mint, (pre_amount, post_amount) in balance_changes(record, wallet).items():
        if mint in ignored:
            continue
        if post_amount > pre_amount:
            events.append(PurchaseEvent(
                token_mint=mint,
                wallet=wallet,
                observed_at=float(observed_at),
                signature=signature,
                amount=post_amount - pre_amount,
            ))

    return events
