"""Event models for the signal and swap pipeline."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import FrozenSet, List, Optional
import time


@dataclass(frozen=True)
class PurchaseEvent:
    """
    A tracked wallet's holdings of a mint increased in one transaction.

    Produced by the purchase extractor and consumed immediately by the
    consensus tracker. Never persisted.
    """
    token_mint: str
    wallet: str
    observed_at: float
    signature: str = ""
    amount: Decimal = Decimal(0)


@dataclass(frozen=True)
class SwapSignal:
    """Consensus reached for a mint: a second distinct wallet bought it."""
    token_mint: str
    wallets: FrozenSet[str]
    raised_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SwapRequest:
    """Everything needed to buy one signaled mint with the funding token."""
    token_mint: str
    funding_mint: str
    funding_amount: Decimal
    source_account: str
    destination_account: Optional[str]
    owner: str
    min_amount_out: int = 0


@dataclass
class UnitConfirmation:
    """Outcome of one submitted inner transaction."""
    index: int
    signature: Optional[str]
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "signature": self.signature,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class SwapResult:
    """
    Ordered confirmations for the inner transactions of one swap.

    ``error`` is set when the swap failed before anything was submitted
    (pool lookup, account lookup, swap already in flight). Partial
    completion shows up as a failed confirmation after successful ones.
    """
    token_mint: str
    confirmations: List[UnitConfirmation] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return (
            self.error is None
            and bool(self.confirmations)
            and all(c.success for c in self.confirmations)
        )

    @property
    def partial(self) -> bool:
        """Some units confirmed, then one failed."""
        succeeded = sum(1 for c in self.confirmations if c.success)
        return 0 < succeeded < len(self.confirmations)

    @property
    def signatures(self) -> List[str]:
        return [c.signature for c in self.confirmations if c.signature]

    def to_dict(self) -> dict:
        return {
            "token_mint": self.token_mint,
            "success": self.success,
            "partial": self.partial,
            "error": self.error,
            "confirmations": [c.to_dict() for c in self.confirmations],
        }
