"""Detection module for cross-wallet consensus."""

from .consensus import BuyerSet, ConsensusState, ConsensusTracker, CONSENSUS_THRESHOLD

__all__ = [
    "BuyerSet",
    "ConsensusState",
    "ConsensusTracker",
    "CONSENSUS_THRESHOLD",
]
