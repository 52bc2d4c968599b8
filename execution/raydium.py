"""
Raydium AMM v4 pool decoding and swap instruction building.

Layouts follow the on-chain program state:
- AMM v4 liquidity state: 752 bytes
- OpenBook (Serum v3) market state: 388 bytes
- SPL token account: 165 bytes
"""

import logging
import struct
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import List, Sequence, Tuple

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

logger = logging.getLogger(__name__)

# Program IDs
RAYDIUM_AMM_V4_PROGRAM_ID = Pubkey.from_string("675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")

AMM_AUTHORITY_SEED = b"amm authority"
SWAP_BASE_IN_INSTRUCTION = 9
CREATE_ATA_IDEMPOTENT_INSTRUCTION = 1

# Raydium AMM v4 status values
AMM_STATUS_UNINITIALIZED = 0
AMM_STATUS_INITIALIZED = 1
AMM_STATUS_DISABLED = 2
AMM_STATUS_WITHDRAW_ONLY = 3
AMM_STATUS_LIQUIDITY_ONLY = 4
AMM_STATUS_ORDERBOOK_ONLY = 5
AMM_STATUS_SWAP_ONLY = 6
AMM_STATUS_WAITING_TRADE = 7

TRADABLE_STATUSES = (
    AMM_STATUS_INITIALIZED,
    AMM_STATUS_SWAP_ONLY,
    AMM_STATUS_WAITING_TRADE,
)

# Max serialized transaction size (IPv6 MTU minus headers)
PACKET_DATA_SIZE = 1232

AMM_V4_FIELDS = (
    [(name, "Q") for name in (
        "status", "nonce", "max_order", "depth", "base_decimal", "quote_decimal",
        "state", "reset_flag", "min_size", "vol_max_cut_ratio", "amount_wave_ratio",
        "base_lot_size", "quote_lot_size", "min_price_multiplier",
        "max_price_multiplier", "system_decimal_value",
        "min_separate_numerator", "min_separate_denominator",
        "trade_fee_numerator", "trade_fee_denominator",
        "pnl_numerator", "pnl_denominator",
        "swap_fee_numerator", "swap_fee_denominator",
        "base_need_take_pnl", "quote_need_take_pnl",
        "quote_total_pnl", "base_total_pnl",
        "pool_open_time", "punish_pc_amount", "punish_coin_amount",
        "orderbook_to_init_time",
    )]
    + [
        ("swap_base_in_amount", "16s"),
        ("swap_quote_out_amount", "16s"),
        ("swap_base2quote_fee", "Q"),
        ("swap_quote_in_amount", "16s"),
        ("swap_base_out_amount", "16s"),
        ("swap_quote2base_fee", "Q"),
    ]
    + [(name, "32s") for name in (
        "base_vault", "quote_vault", "base_mint", "quote_mint", "lp_mint",
        "open_orders", "market_id", "market_program_id", "target_orders",
        "withdraw_queue", "lp_vault", "owner",
    )]
    + [("lp_reserve", "Q"), ("padding", "24s")]
)
AMM_V4_LAYOUT = struct.Struct("<" + "".join(fmt for _, fmt in AMM_V4_FIELDS))
_AMM_V4_NAMES = [name for name, _ in AMM_V4_FIELDS]

MARKET_V3_FIELDS = [
    ("head_padding", "5s"),
    ("account_flags", "Q"),
    ("own_address", "32s"),
    ("vault_signer_nonce", "Q"),
    ("base_mint", "32s"),
    ("quote_mint", "32s"),
    ("base_vault", "32s"),
    ("base_deposits_total", "Q"),
    ("base_fees_accrued", "Q"),
    ("quote_vault", "32s"),
    ("quote_deposits_total", "Q"),
    ("quote_fees_accrued", "Q"),
    ("quote_dust_threshold", "Q"),
    ("request_queue", "32s"),
    ("event_queue", "32s"),
    ("bids", "32s"),
    ("asks", "32s"),
    ("base_lot_size", "Q"),
    ("quote_lot_size", "Q"),
    ("fee_rate_bps", "Q"),
    ("referrer_rebates_accrued", "Q"),
    ("tail_padding", "7s"),
]
MARKET_V3_LAYOUT = struct.Struct("<" + "".join(fmt for _, fmt in MARKET_V3_FIELDS))
_MARKET_V3_NAMES = [name for name, _ in MARKET_V3_FIELDS]

# SPL token account: mint, owner, amount
TOKEN_ACCOUNT_LAYOUT = struct.Struct("<32s32sQ")
TOKEN_ACCOUNT_SIZE = 165


class LayoutError(ValueError):
    """Account data does not match the expected layout."""


@dataclass
class AmmState:
    """Decoded subset of a Raydium AMM v4 liquidity state."""
    status: int
    nonce: int
    base_decimal: int
    quote_decimal: int
    base_vault: Pubkey
    quote_vault: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    lp_mint: Pubkey
    open_orders: Pubkey
    market_id: Pubkey
    market_program_id: Pubkey
    target_orders: Pubkey

    @property
    def is_tradable(self) -> bool:
        return self.status in TRADABLE_STATUSES


@dataclass
class MarketState:
    """Decoded subset of an OpenBook v3 market."""
    vault_signer_nonce: int
    base_mint: Pubkey
    quote_mint: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    event_queue: Pubkey
    bids: Pubkey
    asks: Pubkey


@dataclass
class TokenAccount:
    """Decoded SPL token account header."""
    mint: Pubkey
    owner: Pubkey
    amount: int


@dataclass
class PoolKeys:
    """All accounts a swapBaseIn instruction touches on the pool side."""
    amm_id: Pubkey
    authority: Pubkey
    open_orders: Pubkey
    target_orders: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    base_decimals: int
    quote_decimals: int
    market_program_id: Pubkey
    market_id: Pubkey
    market_bids: Pubkey
    market_asks: Pubkey
    market_event_queue: Pubkey
    market_base_vault: Pubkey
    market_quote_vault: Pubkey
    market_authority: Pubkey
    program_id: Pubkey = RAYDIUM_AMM_V4_PROGRAM_ID

    def decimals_for(self, mint: Pubkey) -> int:
        if mint == self.base_mint:
            return self.base_decimals
        if mint == self.quote_mint:
            return self.quote_decimals
        raise LayoutError(f"Pool {self.amm_id} does not trade {mint}")


def decode_amm_state(data: bytes) -> AmmState:
    """
    Decode a Raydium AMM v4 liquidity state.

    Raises:
        LayoutError: If data is shorter than the layout
    """
    if len(data) < AMM_V4_LAYOUT.size:
        raise LayoutError(
            f"AMM data too short: got {len(data)} bytes, need {AMM_V4_LAYOUT.size}"
        )

    fields = dict(zip(_AMM_V4_NAMES, AMM_V4_LAYOUT.unpack_from(data)))

    return AmmState(
        status=fields["status"],
        nonce=fields["nonce"],
        base_decimal=fields["base_decimal"],
        quote_decimal=fields["quote_decimal"],
        base_vault=Pubkey.from_bytes(fields["base_vault"]),
        quote_vault=Pubkey.from_bytes(fields["quote_vault"]),
        base_mint=Pubkey.from_bytes(fields["base_mint"]),
        quote_mint=Pubkey.from_bytes(fields["quote_mint"]),
        lp_mint=Pubkey.from_bytes(fields["lp_mint"]),
        open_orders=Pubkey.from_bytes(fields["open_orders"]),
        market_id=Pubkey.from_bytes(fields["market_id"]),
        market_program_id=Pubkey.from_bytes(fields["market_program_id"]),
        target_orders=Pubkey.from_bytes(fields["target_orders"]),
    )


def decode_market_state(data: bytes) -> MarketState:
    """Decode an OpenBook v3 market state."""
    if len(data) < MARKET_V3_LAYOUT.size:
        raise LayoutError(
            f"Market data too short: got {len(data)} bytes, need {MARKET_V3_LAYOUT.size}"
        )

    fields = dict(zip(_MARKET_V3_NAMES, MARKET_V3_LAYOUT.unpack_from(data)))

    return MarketState(
        vault_signer_nonce=fields["vault_signer_nonce"],
        base_mint=Pubkey.from_bytes(fields["base_mint"]),
        quote_mint=Pubkey.from_bytes(fields["quote_mint"]),
        base_vault=Pubkey.from_bytes(fields["base_vault"]),
        quote_vault=Pubkey.from_bytes(fields["quote_vault"]),
        event_queue=Pubkey.from_bytes(fields["event_queue"]),
        bids=Pubkey.from_bytes(fields["bids"]),
        asks=Pubkey.from_bytes(fields["asks"]),
    )


def decode_token_account(data: bytes) -> TokenAccount:
    """Decode the mint, owner and amount of an SPL token account."""
    if len(data) < TOKEN_ACCOUNT_LAYOUT.size:
        raise LayoutError(f"Token account data too short: {len(data)} bytes")

    mint, owner, amount = TOKEN_ACCOUNT_LAYOUT.unpack_from(data)
    return TokenAccount(
        mint=Pubkey.from_bytes(mint),
        owner=Pubkey.from_bytes(owner),
        amount=amount,
    )


def amm_authority(program_id: Pubkey = RAYDIUM_AMM_V4_PROGRAM_ID) -> Pubkey:
    """Derive the AMM authority PDA."""
    authority, _ = Pubkey.find_program_address([AMM_AUTHORITY_SEED], program_id)
    return authority


def market_vault_signer(market_id: Pubkey, nonce: int, market_program_id: Pubkey) -> Pubkey:
    """Derive the OpenBook market vault signer from its nonce."""
    return Pubkey.create_program_address(
        [bytes(market_id), nonce.to_bytes(8, "little")],
        market_program_id,
    )


def build_pool_keys(amm_id: Pubkey, amm: AmmState, market: MarketState) -> PoolKeys:
    """Combine decoded AMM and market state into swap routing keys."""
    return PoolKeys(
        amm_id=amm_id,
        authority=amm_authority(),
        open_orders=amm.open_orders,
        target_orders=amm.target_orders,
        base_vault=amm.base_vault,
        quote_vault=amm.quote_vault,
        base_mint=amm.base_mint,
        quote_mint=amm.quote_mint,
        base_decimals=amm.base_decimal,
        quote_decimals=amm.quote_decimal,
        market_program_id=amm.market_program_id,
        market_id=amm.market_id,
        market_bids=market.bids,
        market_asks=market.asks,
        market_event_queue=market.event_queue,
        market_base_vault=market.base_vault,
        market_quote_vault=market.quote_vault,
        market_authority=market_vault_signer(
            amm.market_id, market.vault_signer_nonce, amm.market_program_id
        ),
    )


def get_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Derive the associated token account of ``owner`` for ``mint``."""
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def make_create_ata_instruction(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    """Create the associated token account if it does not exist yet."""
    return Instruction(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        bytes([CREATE_ATA_IDEMPOTENT_INSTRUCTION]),
        [
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(get_associated_token_address(owner, mint), is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=False, is_writable=False),
            AccountMeta(mint, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def make_swap_base_in_instruction(
    pool: PoolKeys,
    user_source: Pubkey,
    user_destination: Pubkey,
    owner: Pubkey,
    amount_in: int,
    min_amount_out: int = 0,
) -> Instruction:
    """
    Build a swapBaseIn instruction (fixed input amount).

    The program infers direction from the mint of ``user_source``.
    """
    if amount_in <= 0:
        raise ValueError("amount_in must be positive")
    if min_amount_out < 0:
        raise ValueError("min_amount_out must not be negative")

    data = struct.pack("<BQQ", SWAP_BASE_IN_INSTRUCTION, amount_in, min_amount_out)

    accounts = [
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pool.amm_id, is_signer=False, is_writable=True),
        AccountMeta(pool.authority, is_signer=False, is_writable=False),
        AccountMeta(pool.open_orders, is_signer=False, is_writable=True),
        AccountMeta(pool.target_orders, is_signer=False, is_writable=True),
        AccountMeta(pool.base_vault, is_signer=False, is_writable=True),
        AccountMeta(pool.quote_vault, is_signer=False, is_writable=True),
        AccountMeta(pool.market_program_id, is_signer=False, is_writable=False),
        AccountMeta(pool.market_id, is_signer=False, is_writable=True),
        AccountMeta(pool.market_bids, is_signer=False, is_writable=True),
        AccountMeta(pool.market_asks, is_signer=False, is_writable=True),
        AccountMeta(pool.market_event_queue, is_signer=False, is_writable=True),
        AccountMeta(pool.market_base_vault, is_signer=False, is_writable=True),
        AccountMeta(pool.market_quote_vault, is_signer=False, is_writable=True),
        AccountMeta(pool.market_authority, is_signer=False, is_writable=False),
        AccountMeta(user_source, is_signer=False, is_writable=True),
        AccountMeta(user_destination, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=True, is_writable=False),
    ]

    return Instruction(pool.program_id, data, accounts)


def serialized_size(instructions: Sequence[Instruction], payer: Pubkey) -> int:
    """Size in bytes of a transaction carrying ``instructions``, once signed."""
    message = Message.new_with_blockhash(list(instructions), payer, Hash.default())
    return len(bytes(Transaction.new_unsigned(message)))


def partition_instructions(
    instructions: Sequence[Instruction],
    payer: Pubkey,
    max_instructions: int = 8,
    max_size: int = PACKET_DATA_SIZE,
) -> List[List[Instruction]]:
    """
    Greedily pack instructions, in order, into inner transactions.

    Each unit stays under ``max_size`` serialized bytes and carries at most
    ``max_instructions`` instructions.

    Raises:
        ValueError: If a single instruction does not fit in a transaction
    """
    units: List[List[Instruction]] = []
    current: List[Instruction] = []

    for instruction in instructions:
        candidate = current + [instruction]
        if len(candidate) <= max_instructions and serialized_size(candidate, payer) <= max_size:
            current = candidate
            continue

        if not current:
            raise ValueError("Instruction too large for a single transaction")

        units.append(current)
        current = [instruction]
        if serialized_size(current, payer) > max_size:
            raise ValueError("Instruction too large for a single transaction")

    if current:
        units.append(current)

    return units


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human-readable amount to integer base units, rounding down."""
    return int(Decimal(amount).scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def split_pool_sides(pool: PoolKeys, funding_mint: Pubkey) -> Tuple[Pubkey, Pubkey]:
    """Return (input mint, output mint) for a swap paid with ``funding_mint``."""
    if funding_mint == pool.base_mint:
        return pool.base_mint, pool.quote_mint
    if funding_mint == pool.quote_mint:
        return pool.quote_mint, pool.base_mint
    raise LayoutError(f"Pool {pool.amm_id} does not trade funding mint {funding_mint}")
