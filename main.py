"""
Copycat: Solana consensus copy-trading bot

Main entry point for the application.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from config.settings import Settings, get_settings
from config.wallets import load_tracked_wallets
from core.monitoring import MetricsCollector
from core.scheduler import PollingScheduler
from core.ttl_cache import SignatureCache
from detection.consensus import ConsensusTracker
from execution.keys import load_keypair
from execution.swap import SwapExecutor
from ledger.client import LedgerClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

logger = logging.getLogger("copycat")


class Application:
    """Main application class wiring the pipeline together."""

    def __init__(self, settings: Settings, run_once: bool = False):
        self.settings = settings
        self.run_once = run_once

        # Components (initialized in start())
        self.ledger: Optional[LedgerClient] = None
        self.tracker: Optional[ConsensusTracker] = None
        self.executor: Optional[SwapExecutor] = None
        self.scheduler: Optional[PollingScheduler] = None
        self.metrics: Optional[MetricsCollector] = None

        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Build and start all components."""
        logger.info("Starting Copycat...")
        settings = self.settings

        missing = settings.missing_swap_settings()
        if missing:
            raise ValueError(f"Missing required settings: {', '.join(missing)}")

        wallets = load_tracked_wallets(settings.tracked_wallets, settings.wallets_file)
        if not wallets:
            raise ValueError("No wallets to track (set TRACKED_WALLETS or WALLETS_FILE)")

        self.metrics = MetricsCollector()

        logger.info("Connecting to ledger RPC...")
        self.ledger = LedgerClient(
            rpc_url=settings.rpc_url,
            timeout=settings.request_timeout_seconds,
            max_concurrent=settings.max_concurrent_requests,
        )
        await self.ledger.start()

        self.tracker = ConsensusTracker(
            threshold=settings.consensus_threshold,
            max_age_cycles=settings.consensus_max_age_cycles,
        )

        owner = load_keypair(settings.private_key)
        self.executor = SwapExecutor(
            ledger=self.ledger,
            owner=owner,
            pool_id=settings.raydium_pool_id,
            funding_mint=settings.funding_mint,
            funding_amount=settings.funding_amount,
            source_account=settings.source_token_account,
            destination_account=settings.destination_token_account,
            min_amount_out=settings.min_amount_out,
            confirm_timeout=settings.confirm_timeout_seconds,
        )
        if settings.min_amount_out == 0:
            logger.warning("min_amount_out is 0: swaps accept any output amount")

        self.scheduler = PollingScheduler(
            ledger=self.ledger,
            tracker=self.tracker,
            executor=self.executor,
            wallets=wallets,
            poll_interval=settings.poll_interval_seconds,
            signature_limit=settings.signature_limit,
            ignore_mints=settings.ignored_mint_set,
            seen_signatures=SignatureCache(ttl=float(settings.seen_signature_ttl_seconds)),
            metrics=self.metrics,
        )

        logger.info(
            f"Copycat started: {len(wallets)} wallets, signer {owner.pubkey()}, "
            f"pool {settings.raydium_pool_id}"
        )

    async def run(self):
        """Run until stopped (or for one cycle with --once)."""
        if self.run_once:
            self._task = asyncio.create_task(self.scheduler.run_cycle())
        else:
            self._task = asyncio.create_task(self.scheduler.run_forever())
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Main task cancelled")

    async def stop(self):
        """Stop all components gracefully."""
        logger.info("Stopping Copycat...")

        if self.scheduler:
            self.scheduler.stop()

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        if self.ledger:
            await self.ledger.stop()

        if self.tracker:
            logger.info(f"Tracker stats: {self.tracker.get_stats()}")
        if self.executor:
            logger.info(f"Executor stats: {self.executor.get_stats()}")

        logger.info("Copycat stopped.")


def setup_signal_handlers(app: Application):
    """Setup cross-platform signal handlers for graceful shutdown."""
    def handler(signum, frame):
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name}, initiating graceful shutdown...")
        if app.scheduler:
            app.scheduler.stop()
        try:
            loop = asyncio.get_running_loop()
            if app._task:
                loop.call_soon_threadsafe(app._task.cancel)
        except RuntimeError:
            # No running loop yet
            pass

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)

    # Windows-specific: SIGBREAK (Ctrl+Break)
    if hasattr(signal, 'SIGBREAK'):
        signal.signal(signal.SIGBREAK, handler)


async def main(run_once: bool = False):
    """Main entry point.

    Args:
        run_once: Run a single polling cycle and exit
    """
    app = Application(get_settings(), run_once=run_once)

    setup_signal_handlers(app)

    try:
        await app.start()
        await app.run()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await app.stop()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Copycat - Solana consensus copy-trading bot")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single polling cycle and exit"
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    asyncio.run(main(run_once=args.once))
