"""Tests for settings and wallet list loading."""

from decimal import Decimal

import pytest
from pydantic import ValidationError
from solders.pubkey import Pubkey

from config.settings import Settings
from config.wallets import (
    load_tracked_wallets,
    load_wallets_file,
    parse_wallet_list,
    validate_wallets,
)
from parser.purchases import QUOTE_MINTS, WSOL_MINT

WALLET_A = str(Pubkey.new_unique())
WALLET_B = str(Pubkey.new_unique())


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.consensus_threshold == 2
        assert settings.funding_amount == Decimal("0.1")
        assert settings.min_amount_out == 0
        assert settings.ignored_mint_set == QUOTE_MINTS
        assert settings.funding_mint == WSOL_MINT

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "2.5")
        monkeypatch.setenv("FUNDING_AMOUNT", "0.25")
        monkeypatch.setenv("IGNORED_MINTS", "mint_x, mint_y,")

        settings = Settings(_env_file=None)

        assert settings.poll_interval_seconds == 2.5
        assert settings.funding_amount == Decimal("0.25")
        assert settings.ignored_mint_set == {"mint_x", "mint_y"}

    def test_threshold_below_two_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, consensus_threshold=1)

    def test_non_positive_funding_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, funding_amount=Decimal("0"))

    def test_missing_swap_settings(self):
        settings = Settings(_env_file=None, raydium_pool_id="pool")

        assert settings.missing_swap_settings() == ["private_key", "source_token_account"]


class TestWallets:
    """Tests for wallet list loading."""

    def test_parse_wallet_list(self):
        assert parse_wallet_list("a, b\nc,,") == ["a", "b", "c"]
        assert parse_wallet_list("") == []

    def test_validate_deduplicates_in_order(self):
        assert validate_wallets([WALLET_B, WALLET_A, WALLET_B]) == (WALLET_B, WALLET_A)

    def test_validate_rejects_invalid(self):
        with pytest.raises(ValueError):
            validate_wallets(["not-a-wallet"])

    def test_load_yaml_mapping(self, tmp_path):
        path = tmp_path / "wallets.yaml"
        path.write_text(f"wallets:\n  - {WALLET_A}\n  - address: {WALLET_B}\n    label: whale\n")

        assert load_wallets_file(str(path)) == [WALLET_A, WALLET_B]

    def test_load_yaml_list(self, tmp_path):
        path = tmp_path / "wallets.yaml"
        path.write_text(f"- {WALLET_A}\n")

        assert load_wallets_file(str(path)) == [WALLET_A]

    def test_load_yaml_invalid_entry(self, tmp_path):
        path = tmp_path / "wallets.yaml"
        path.write_text("wallets:\n  - label: no address\n")

        with pytest.raises(ValueError):
            load_wallets_file(str(path))

    def test_file_and_env_merged(self, tmp_path):
        path = tmp_path / "wallets.yaml"
        path.write_text(f"wallets:\n  - {WALLET_A}\n")

        wallets = load_tracked_wallets(f"{WALLET_B},{WALLET_A}", str(path))

        assert wallets == (WALLET_A, WALLET_B)

    def test_missing_file_uses_env(self, tmp_path):
        wallets = load_tracked_wallets(WALLET_A, str(tmp_path / "absent.yaml"))

        assert wallets == (WALLET_A,)
