"""Swap execution against the configured Raydium pool."""

import logging
from decimal import Decimal
from typing import List, Optional, Set, Tuple

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ledger.client import LedgerClient, LedgerError, decode_account_data
from models.events import SwapRequest, SwapResult, UnitConfirmation
from .raydium import (
    LayoutError,
    PoolKeys,
    build_pool_keys,
    decode_amm_state,
    decode_market_state,
    decode_token_account,
    get_associated_token_address,
    make_create_ata_instruction,
    make_swap_base_in_instruction,
    partition_instructions,
    split_pool_sides,
    to_base_units,
)

logger = logging.getLogger(__name__)


class SwapError(Exception):
    """A swap could not be prepared."""


class PoolError(SwapError):
    """Pool metadata is unavailable or does not fit the swap."""


class AccountLookupError(SwapError):
    """A token account lookup failed or returned unusable data."""


class SwapExecutor:
    """
    Buys a signaled mint with a fixed amount of the funding token.

    Steps:
    1. Resolve pool and market accounts for the configured pool
    2. Look up the source and destination token accounts
    3. Build the instructions (optional ATA create, swapBaseIn)
    4. Pack them into inner transactions
    5. Submit each in order, waiting for confirmation before the next

    Submission stops at the first failed unit; already confirmed units are
    kept in the result and never rolled back. At most one swap per mint is
    in flight at any time.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        owner: Keypair,
        pool_id: str,
        funding_mint: str,
        funding_amount: Decimal,
        source_account: str,
        destination_account: Optional[str] = None,
        min_amount_out: int = 0,
        confirm_timeout: float = 60.0,
        max_instructions_per_unit: int = 8,
    ):
        self.ledger = ledger
        self.owner = owner
        self.pool_id = pool_id
        self.funding_mint = funding_mint
        self.funding_amount = Decimal(funding_amount)
        self.source_account = source_account
        self.destination_account = destination_account
        self.min_amount_out = min_amount_out
        self.confirm_timeout = confirm_timeout
        self.max_instructions_per_unit = max_instructions_per_unit

        self._in_flight: Set[str] = set()

        # Stats
        self._swaps = 0
        self._succeeded = 0
        self._failed = 0
        self._units_submitted = 0

    def build_request(self, token_mint: str) -> SwapRequest:
        """Build a swap request for ``token_mint`` from static configuration."""
        return SwapRequest(
            token_mint=token_mint,
            funding_mint=self.funding_mint,
            funding_amount=self.funding_amount,
            source_account=self.source_account,
            destination_account=self.destination_account,
            owner=str(self.owner.pubkey()),
            min_amount_out=self.min_amount_out,
        )

    def is_in_flight(self, token_mint: str) -> bool:
        return token_mint in self._in_flight

    async def execute(self, token_mint: str) -> SwapResult:
        """
        Buy ``token_mint``.

        Never raises for swap failures: preparation errors come back as a
        result with ``error`` set and no confirmations, submission errors
        as a failed confirmation.
        """
        if token_mint in self._in_flight:
            logger.warning(f"Swap for {token_mint} already in flight, skipping")
            return SwapResult(token_mint=token_mint, error="swap already in flight")

        self._in_flight.add(token_mint)
        self._swaps += 1
        try:
            request = self.build_request(token_mint)
            logger.info(
                f"Swap started: {request.funding_amount} of {request.funding_mint} "
                f"-> {token_mint} (min out {request.min_amount_out})"
            )

            try:
                units = await self.prepare(request)
            except (SwapError, LedgerError, ValueError) as e:
                self._failed += 1
                logger.error(f"Swap preparation failed for {token_mint}: {e}")
                return SwapResult(token_mint=token_mint, error=str(e))

            result = await self._submit_units(token_mint, units)

            if result.success:
                self._succeeded += 1
                logger.info(f"Swap complete for {token_mint}: {', '.join(result.signatures)}")
            else:
                self._failed += 1
                if result.partial:
                    logger.error(
                        f"Swap for {token_mint} partially completed: "
                        f"{len(result.signatures)} of {len(units)} units landed, no rollback"
                    )
            return result
        finally:
            self._in_flight.discard(token_mint)

    async def prepare(self, request: SwapRequest) -> List[List[Instruction]]:
        """Build and partition the swap instructions for ``request``."""
        pool = await self.load_pool_keys()

        mint = Pubkey.from_string(request.token_mint)
        funding_mint = Pubkey.from_string(request.funding_mint)

        try:
            input_mint, output_mint = split_pool_sides(pool, funding_mint)
        except LayoutError as e:
            raise PoolError(str(e)) from e
        if output_mint != mint:
            raise PoolError(f"Pool {self.pool_id} does not trade {request.token_mint}")

        amount_in = to_base_units(request.funding_amount, pool.decimals_for(input_mint))
        if amount_in <= 0:
            raise SwapError(f"Funding amount {request.funding_amount} rounds to zero base units")

        source, destination, setup = await self._resolve_accounts(
            request, mint, funding_mint, amount_in
        )

        owner = self.owner.pubkey()
        instructions = setup + [
            make_swap_base_in_instruction(
                pool,
                user_source=source,
                user_destination=destination,
                owner=owner,
                amount_in=amount_in,
                min_amount_out=request.min_amount_out,
            )
        ]

        return partition_instructions(
            instructions, owner, max_instructions=self.max_instructions_per_unit
        )

    async def load_pool_keys(self) -> PoolKeys:
        """Fetch and decode the pool and its market."""
        amm_id = Pubkey.from_string(self.pool_id)

        amm_data = await self.ledger.get_account_data(self.pool_id)
        if amm_data is None:
            raise PoolError(f"Pool account {self.pool_id} not found")

        try:
            amm = decode_amm_state(amm_data)
        except LayoutError as e:
            raise PoolError(f"Pool {self.pool_id}: {e}") from e
        if not amm.is_tradable:
            raise PoolError(f"Pool {self.pool_id} is not open for swaps (status {amm.status})")

        market_data = await self.ledger.get_account_data(str(amm.market_id))
        if market_data is None:
            raise PoolError(f"Market account {amm.market_id} not found")

        try:
            market = decode_market_state(market_data)
            return build_pool_keys(amm_id, amm, market)
        except Exception as e:
            raise PoolError(f"Market {amm.market_id}: {e}") from e

    async def _resolve_accounts(
        self,
        request: SwapRequest,
        mint: Pubkey,
        funding_mint: Pubkey,
        amount_in: int,
    ) -> Tuple[Pubkey, Pubkey, List[Instruction]]:
        """Check the token accounts and return (source, destination, setup instructions)."""
        owner = self.owner.pubkey()
        source = Pubkey.from_string(request.source_account)
        if request.destination_account:
            destination = Pubkey.from_string(request.destination_account)
        else:
            destination = get_associated_token_address(owner, mint)

        try:
            source_info, destination_info = await self.ledger.get_multiple_accounts(
                [str(source), str(destination)]
            )
        except LedgerError as e:
            raise AccountLookupError(f"Token account lookup failed: {e}") from e

        if source_info is None:
            raise AccountLookupError(f"Source token account {source} not found")

        source_account = decode_token_account(decode_account_data(source_info))
        if source_account.mint != funding_mint:
            raise AccountLookupError(
                f"Source token account {source} holds {source_account.mint}, not {funding_mint}"
            )
        if source_account.amount < amount_in:
            raise SwapError(
                f"Insufficient funding balance: {source_account.amount} < {amount_in}"
            )

        setup: List[Instruction] = []
        if destination_info is None:
            if request.destination_account:
                raise AccountLookupError(f"Destination token account {destination} not found")
            setup.append(make_create_ata_instruction(owner, owner, mint))
        else:
            destination_account = decode_token_account(decode_account_data(destination_info))
            if destination_account.mint != mint:
                raise AccountLookupError(
                    f"Destination token account {destination} holds "
                    f"{destination_account.mint}, not {mint}"
                )

        return source, destination, setup

    async def _submit_units(
        self,
        token_mint: str,
        units: List[List[Instruction]],
    ) -> SwapResult:
        """Submit inner transactions in order, stopping at the first failure."""
        result = SwapResult(token_mint=token_mint)
        total = len(units)

        for index, instructions in enumerate(units):
            signature = None
            try:
                blockhash = Hash.from_string(await self.ledger.get_latest_blockhash())
                message = Message.new_with_blockhash(instructions, self.owner.pubkey(), blockhash)
                transaction = Transaction([self.owner], message, blockhash)
                signature = str(transaction.signatures[0])

                self._units_submitted += 1
                await self.ledger.submit_and_confirm(bytes(transaction), timeout=self.confirm_timeout)
            except Exception as e:
                result.confirmations.append(UnitConfirmation(
                    index=index,
                    signature=signature or getattr(e, "signature", None),
                    success=False,
                    error=str(e),
                ))
                logger.error(f"Swap unit {index + 1}/{total} for {token_mint} failed: {e}")
                break

            result.confirmations.append(UnitConfirmation(
                index=index,
                signature=signature,
                success=True,
            ))
            logger.info(f"Swap unit {index + 1}/{total} for {token_mint} confirmed: {signature}")

        return result

    def get_stats(self) -> dict:
        """Get executor statistics."""
        return {
            "swaps": self._swaps,
            "succeeded": self._succeeded,
            "failed": self._failed,
            "units_submitted": self._units_submitted,
            "in_flight": len(self._in_flight),
        }
