"""Cross-wallet consensus tracking for purchased mints."""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, Optional, Set

from models.events import PurchaseEvent, SwapSignal

logger = logging.getLogger(__name__)

CONSENSUS_THRESHOLD = 2


@dataclass
class BuyerSet:
    """Distinct tracked wallets seen buying one mint."""
    mint: str
    wallets: Set[str] = field(default_factory=set)
    first_cycle: int = 0
    last_cycle: int = 0
    signaled: bool = False

    def __len__(self) -> int:
        return len(self.wallets)


class ConsensusState:
    """
    Mapping of mint -> BuyerSet.

    Owned by exactly one ConsensusTracker and mutated only through it.
    """

    def __init__(self):
        self._buyers: Dict[str, BuyerSet] = {}

    def get(self, mint: str) -> Optional[BuyerSet]:
        return self._buyers.get(mint)

    def get_or_create(self, mint: str, cycle: int) -> BuyerSet:
        buyer_set = self._buyers.get(mint)
        if buyer_set is None:
            buyer_set = BuyerSet(mint=mint, first_cycle=cycle, last_cycle=cycle)
            self._buyers[mint] = buyer_set
        return buyer_set

    def remove(self, mint: str):
        self._buyers.pop(mint, None)

    def __contains__(self, mint: str) -> bool:
        return mint in self._buyers

    def __iter__(self) -> Iterator[BuyerSet]:
        return iter(list(self._buyers.values()))

    def __len__(self) -> int:
        return len(self._buyers)


class ConsensusTracker:
    """
    Raises a SwapSignal the moment a second distinct wallet buys a mint.

    ``record`` never awaits, so adding a wallet and checking the threshold
    happen atomically on the event loop. A mint signals at most once while
    its buyer set is retained; buyer sets idle for more than
    ``max_age_cycles`` polling cycles are evicted.
    """

    def __init__(
        self,
        state: Optional[ConsensusState] = None,
        threshold: int = CONSENSUS_THRESHOLD,
        max_age_cycles: int = 0,
    ):
        if threshold < 2:
            raise ValueError("consensus threshold must be at least 2")

        self.state = state if state is not None else ConsensusState()
        self.threshold = threshold
        self.max_age_cycles = max_age_cycles
        self.cycle = 0

        # Stats
        self._events = 0
        self._signals = 0
        self._evicted = 0

    def record(self, event: PurchaseEvent) -> Optional[SwapSignal]:
        """
        Add the event's wallet to the mint's buyer set.

        Returns:
            SwapSignal if the set just reached the threshold, None otherwise
        """
        self._events += 1
        buyer_set = self.state.get_or_create(event.token_mint, self.cycle)

        if event.wallet in buyer_set.wallets:
            return None

        buyer_set.wallets.add(event.wallet)
        buyer_set.last_cycle = self.cycle

        if len(buyer_set) == self.threshold and not buyer_set.signaled:
            buyer_set.signaled = True
            self._signals += 1
            logger.info(
                f"Consensus reached for {event.token_mint}: "
                f"{len(buyer_set)} wallets ({', '.join(sorted(buyer_set.wallets))})"
            )
            return SwapSignal(
                token_mint=event.token_mint,
                wallets=frozenset(buyer_set.wallets),
            )

        return None

    def buyers(self, mint: str) -> FrozenSet[str]:
        """Wallets known to have bought ``mint``."""
        buyer_set = self.state.get(mint)
        return frozenset(buyer_set.wallets) if buyer_set else frozenset()

    def advance_cycle(self) -> int:
        """Mark the end of a polling cycle."""
        self.cycle += 1
        return self.cycle

    def evict_stale(self, max_age_cycles: Optional[int] = None) -> int:
        """
        Drop buyer sets not updated within the last ``max_age_cycles`` cycles.

        A value of 0 disables eviction. Returns the number of evicted mints.
        """
        max_age = self.max_age_cycles if max_age_cycles is None else max_age_cycles
        if max_age <= 0:
            return 0

        stale = [
            buyer_set.mint
            for buyer_set in self.state
            if self.cycle - buyer_set.last_cycle > max_age
        ]
        for mint in stale:
            self.state.remove(mint)

        if stale:
            self._evicted += len(stale)
            logger.debug(f"Evicted {len(stale)} stale buyer sets")

        return len(stale)

    def __len__(self) -> int:
        return len(self.state)

    def get_stats(self) -> dict:
        """Get tracker statistics."""
        return {
            "tracked_mints": len(self.state),
            "cycle": self.cycle,
            "events": self._events,
            "signals": self._signals,
            "evicted": self._evicted,
        }
