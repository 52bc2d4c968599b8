"""Tracked wallet list loading."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import yaml
from solders.pubkey import Pubkey

logger = logging.getLogger(__name__)


def parse_wallet_list(raw: str) -> List[str]:
    """Split a comma or whitespace separated wallet list."""
    return [w for w in raw.replace(",", " ").split() if w]


def load_wallets_file(path: str) -> List[str]:
    """
    Load wallets from YAML.

    Accepts a plain list, or a mapping with a ``wallets`` list whose items
    are addresses or ``{address: ..., label: ...}`` mappings.
    """
    with open(path, "r") as f:
        config = yaml.safe_load(f) or []

    entries = config.get("wallets", []) if isinstance(config, dict) else config
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a list of wallets")

    wallets = []
    for entry in entries:
        if isinstance(entry, dict):
            entry = entry.get("address")
        if not isinstance(entry, str) or not entry.strip():
            raise ValueError(f"{path}: invalid wallet entry {entry!r}")
        wallets.append(entry.strip())

    return wallets


def validate_wallets(wallets: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate preserving order; reject invalid addresses."""
    seen = []
    for wallet in wallets:
        try:
            Pubkey.from_string(wallet)
        except ValueError as e:
            raise ValueError(f"Invalid wallet address {wallet!r}: {e}") from e
        if wallet not in seen:
            seen.append(wallet)
    return tuple(seen)


def load_tracked_wallets(
    env_wallets: str = "",
    wallets_file: Optional[str] = None,
) -> Tuple[str, ...]:
    """Merge wallets from the YAML file and the env list."""
    wallets: List[str] = []

    if wallets_file and Path(wallets_file).is_file():
        wallets.extend(load_wallets_file(wallets_file))
        logger.info(f"Loaded {len(wallets)} wallets from {wallets_file}")
    elif wallets_file:
        logger.debug(f"Wallets file {wallets_file} not found, using env only")

    wallets.extend(parse_wallet_list(env_wallets))
    return validate_wallets(wallets)
