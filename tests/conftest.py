"""Shared fixtures: an in-memory Raydium pool and a mocked ledger."""

import base64
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock, MagicMock
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from execution.raydium import (
    AMM_STATUS_INITIALIZED,
    AMM_V4_FIELDS,
    AMM_V4_LAYOUT,
    MARKET_V3_FIELDS,
    MARKET_V3_LAYOUT,
    TOKEN_ACCOUNT_LAYOUT,
    TOKEN_ACCOUNT_SIZE,
    TOKEN_PROGRAM_ID,
)
from execution.swap import SwapExecutor
from ledger.client import LedgerClient
from parser.purchases import WSOL_MINT


def pack_layout(layout, fields, values):
    """Pack ``values`` by field name, zero-filling the rest."""
    args = []
    for name, fmt in fields:
        default = 0 if fmt == "Q" else b"\x00" * int(fmt[:-1])
        value = values.get(name, default)
        args.append(bytes(value) if isinstance(value, Pubkey) else value)
    return layout.pack(*args)


def find_vault_signer_nonce(market_id: Pubkey, program_id: Pubkey) -> int:
    """First nonce whose derived vault signer is off-curve."""
    for nonce in range(256):
        try:
            Pubkey.create_program_address(
                [bytes(market_id), nonce.to_bytes(8, "little")], program_id
            )
            return nonce
        except Exception:
            continue
    raise RuntimeError("no valid vault signer nonce")


def rpc_response(payload):
    response = MagicMock()
    response.status_code = 200
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value=payload)
    return response


def make_client(*payloads):
    """LedgerClient whose HTTP posts return ``payloads`` in order."""
    client = LedgerClient("https://rpc.example")
    client._http_client = MagicMock()
    client._http_client.post = AsyncMock(
        side_effect=[rpc_response(p) for p in payloads]
    )
    return client


def token_account_info(mint: Pubkey, owner: Pubkey, amount: int) -> dict:
    data = TOKEN_ACCOUNT_LAYOUT.pack(bytes(mint), bytes(owner), amount).ljust(TOKEN_ACCOUNT_SIZE, b"\x00")
    return {
        "data": [base64.b64encode(data).decode(), "base64"],
        "owner": str(TOKEN_PROGRAM_ID),
        "lamports": 2039280,
        "executable": False,
    }


class FakePool:
    """A WSOL-quoted pool trading ``target_mint``, with its market."""

    def __init__(self, target_mint: Pubkey, funding_mint: Pubkey, status: int = AMM_STATUS_INITIALIZED):
        self.target_mint = target_mint
        self.funding_mint = funding_mint
        self.amm_id = Pubkey.new_unique()
        self.market_id = Pubkey.new_unique()
        self.market_program_id = Pubkey.new_unique()
        self.nonce = find_vault_signer_nonce(self.market_id, self.market_program_id)
        self.status = status

    def amm_data(self) -> bytes:
        return pack_layout(AMM_V4_LAYOUT, AMM_V4_FIELDS, {
            "status": self.status,
            "base_decimal": 6,
            "quote_decimal": 9,
            "base_vault": Pubkey.new_unique(),
            "quote_vault": Pubkey.new_unique(),
            "base_mint": self.target_mint,
            "quote_mint": self.funding_mint,
            "lp_mint": Pubkey.new_unique(),
            "open_orders": Pubkey.new_unique(),
            "market_id": self.market_id,
            "market_program_id": self.market_program_id,
            "target_orders": Pubkey.new_unique(),
        })

    def market_data(self) -> bytes:
        return pack_layout(MARKET_V3_LAYOUT, MARKET_V3_FIELDS, {
            "vault_signer_nonce": self.nonce,
            "base_mint": self.target_mint,
            "quote_mint": self.funding_mint,
            "base_vault": Pubkey.new_unique(),
            "quote_vault": Pubkey.new_unique(),
            "event_queue": Pubkey.new_unique(),
            "bids": Pubkey.new_unique(),
            "asks": Pubkey.new_unique(),
        })


class SwapSetup:
    """Owner, accounts, pool and mocked ledger for executor tests."""

    def __init__(self):
        self.owner = Keypair()
        self.target_mint = Pubkey.new_unique()
        self.funding_mint = Pubkey.from_string(WSOL_MINT)
        self.source_account = Pubkey.new_unique()
        self.pool = FakePool(self.target_mint, self.funding_mint)

        self.source_info = token_account_info(self.funding_mint, self.owner.pubkey(), 10_000_000_000)
        self.destination_info = None

        accounts = {
            str(self.pool.amm_id): self.pool.amm_data(),
            str(self.pool.market_id): self.pool.market_data(),
        }

        self.ledger = MagicMock(spec=LedgerClient)
        self.ledger.get_account_data = AsyncMock(side_effect=lambda address: accounts.get(address))
        self.ledger.get_multiple_accounts = AsyncMock(
            side_effect=lambda addresses: [self.source_info, self.destination_info]
        )
        self.ledger.get_latest_blockhash = AsyncMock(return_value=str(Hash.default()))
        self.ledger.submit_and_confirm = AsyncMock(return_value="confirmed_sig")

    def executor(self, **kwargs) -> SwapExecutor:
        params = dict(
            ledger=self.ledger,
            owner=self.owner,
            pool_id=str(self.pool.amm_id),
            funding_mint=WSOL_MINT,
            funding_amount=Decimal("0.1"),
            source_account=str(self.source_account),
        )
        params.update(kwargs)
        return SwapExecutor(**params)


@pytest.fixture
def swap_setup():
    return SwapSetup()
