"""Pydantic settings for Copycat configuration."""

from decimal import Decimal
from functools import lru_cache
from typing import FrozenSet, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from parser.purchases import QUOTE_MINTS, WSOL_MINT

DEFAULT_IGNORED_MINTS = ",".join(sorted(QUOTE_MINTS))


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ledger RPC
    rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Solana JSON-RPC endpoint"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for every RPC request"
    )
    max_concurrent_requests: int = Field(
        default=5,
        description="Max in-flight RPC requests"
    )

    # Tracked wallets
    tracked_wallets: str = Field(
        default="",
        description="Comma-separated wallet addresses to track"
    )
    wallets_file: Optional[str] = Field(
        default="config/wallets.yaml",
        description="YAML file listing wallet addresses to track"
    )

    # Polling
    poll_interval_seconds: float = Field(
        default=5.0,
        description="Delay between polling cycles"
    )
    signature_limit: int = Field(
        default=20,
        description="Recent signatures fetched per wallet per cycle"
    )
    seen_signature_ttl_seconds: int = Field(
        default=3600,
        description="How long analysed signatures are skipped; older purchases are ignored"
    )
    ignored_mints: str = Field(
        default=DEFAULT_IGNORED_MINTS,
        description="Comma-separated mints never counted as purchases"
    )

    # Consensus
    consensus_threshold: int = Field(
        default=2,
        description="Distinct wallets needed to signal a mint"
    )
    consensus_max_age_cycles: int = Field(
        default=720,
        description="Drop buyer sets idle for this many cycles (0 = never)"
    )

    # Swap
    private_key: str = Field(
        default="",
        description="Signer secret: base58, JSON byte array, or keypair file path"
    )
    raydium_pool_id: str = Field(
        default="",
        description="Raydium AMM v4 pool used for every swap"
    )
    funding_mint: str = Field(
        default=WSOL_MINT,
        description="Mint paid into the pool"
    )
    funding_amount: Decimal = Field(
        default=Decimal("0.1"),
        description="Funding amount per swap, in human units"
    )
    source_token_account: str = Field(
        default="",
        description="Token account holding the funding mint"
    )
    destination_token_account: Optional[str] = Field(
        default=None,
        description="Token account receiving the bought mint (owner ATA if unset)"
    )
    min_amount_out: int = Field(
        default=0,
        description="Minimum output in base units (0 accepts any output)"
    )
    confirm_timeout_seconds: float = Field(
        default=60.0,
        description="Max wait for each inner transaction to confirm"
    )

    @field_validator("funding_amount")
    @classmethod
    def _positive_amount(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("funding_amount must be positive")
        return value

    @field_validator("consensus_threshold")
    @classmethod
    def _threshold_at_least_two(cls, value: int) -> int:
        if value < 2:
            raise ValueError("consensus_threshold must be at least 2")
        return value

    @property
    def ignored_mint_set(self) -> FrozenSet[str]:
        """Parsed ``ignored_mints``."""
        return frozenset(m.strip() for m in self.ignored_mints.split(",") if m.strip())

    def missing_swap_settings(self) -> list:
        """Names of settings required for swapping that are unset."""
        required = {
            "private_key": self.private_key,
            "raydium_pool_id": self.raydium_pool_id,
            "source_token_account": self.source_token_account,
        }
        return [name for name, value in required.items() if not value]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> Settings:
    """Settings instance, loaded on first use."""
    return Settings()
