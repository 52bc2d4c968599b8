"""Polling scheduler driving the wallet -> purchase -> consensus -> swap pipeline."""

import asyncio
import logging
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Sequence

from core.monitoring import MetricsCollector
from core.ttl_cache import SignatureCache
from detection.consensus import ConsensusTracker
from execution.swap import SwapExecutor
from ledger.client import LedgerClient
from models.events import SwapResult, SwapSignal
from parser.purchases import extract_purchases

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Scheduler state."""
    IDLE = "idle"
    SCANNING = "scanning"


class PollingScheduler:
    """
    Polls every tracked wallet once per cycle, then sleeps.

    State machine:
    - IDLE: between cycles
    - SCANNING: iterating wallets

    Wallets and their transactions are processed one at a time. A failing
    transaction never aborts its wallet, a failing wallet never aborts the
    cycle, and a failing cycle never stops the loop. Each signal triggers
    exactly one swap, awaited before the scan moves on.

    Purchases whose block time is older than ``max_event_age`` seconds are
    ignored, so history that scrolls back into view after its signature
    expires never rebuilds an evicted buyer set.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        tracker: ConsensusTracker,
        executor: SwapExecutor,
        wallets: Sequence[str],
        poll_interval: float = 5.0,
        signature_limit: int = 20,
        ignore_mints: Iterable[str] = (),
        seen_signatures: Optional[SignatureCache] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_event_age: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.tracker = tracker
        self.executor = executor
        self.wallets = tuple(wallets)
        self.poll_interval = poll_interval
        self.signature_limit = signature_limit
        self.ignore_mints = frozenset(ignore_mints)
        self.seen_signatures = seen_signatures if seen_signatures is not None else SignatureCache()
        self.metrics = metrics or MetricsCollector()
        self._sleep = sleep
        self._clock = clock
        # Purchases older than this are dropped. Defaults to the seen-signature
        # TTL, so a signature refetched after its entry expires is always stale.
        self.max_event_age = (
            max_event_age if max_event_age is not None else self.seen_signatures.ttl
        )

        self.state = SchedulerState.IDLE
        self._running = False
        self._results: Deque[SwapResult] = deque(maxlen=100)

    @property
    def running(self) -> bool:
        return self._running

    async def run_forever(self):
        """Run cycles until ``stop()`` is called or the task is cancelled."""
        self._running = True
        logger.info(
            f"Polling {len(self.wallets)} wallets every {self.poll_interval}s"
        )

        while self._running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                logger.info("Polling cancelled")
                break
            except Exception as e:
                self.state = SchedulerState.IDLE
                logger.error(f"Polling cycle error: {e}", exc_info=True)

            if not self._running:
                break

            try:
                await self._sleep(self.poll_interval)
            except asyncio.CancelledError:
                logger.info("Polling cancelled")
                break

        self._running = False
        logger.info("Polling stopped")

    def stop(self):
        """Stop after the current cycle."""
        self._running = False

    async def run_cycle(self) -> List[SwapSignal]:
        """Scan every wallet once. Returns the signals raised in this cycle."""
        self.state = SchedulerState.SCANNING
        started = time.monotonic()
        signals: List[SwapSignal] = []

        try:
            for wallet in self.wallets:
                try:
                    signals.extend(await self.scan_wallet(wallet))
                except Exception as e:
                    self.metrics.record_wallet_error()
                    logger.error(f"Error monitoring wallet {wallet}: {e}")
        finally:
            self.tracker.advance_cycle()
            self.tracker.evict_stale()
            self.state = SchedulerState.IDLE

        duration = time.monotonic() - started
        self.metrics.record_cycle(duration, len(self.wallets))
        self.metrics.set_gauge("tracked_mints", len(self.tracker))

        summary = self.metrics.get_summary()
        logger.info(
            f"Cycle {summary['cycles']} done in {duration:.2f}s: "
            f"{len(signals)} signals, {int(summary['tracked_mints'])} mints tracked, "
            f"{summary['transactions_processed']} tx processed total"
        )

        return signals

    async def scan_wallet(self, wallet: str) -> List[SwapSignal]:
        """Analyse a wallet's recent transactions and act on any signal."""
        signatures = await self.ledger.get_signatures(wallet, limit=self.signature_limit)
        signals: List[SwapSignal] = []

        for sig_info in signatures:
            signature = sig_info.get("signature", "")
            try:
                new_signals = await self.process_transaction(wallet, sig_info)
            except Exception as e:
                self.metrics.record_tx_error()
                logger.error(f"Error processing transaction {signature}: {e}")
                continue

            for signal in new_signals:
                signals.append(signal)
                await self.handle_signal(signal)

        return signals

    async def process_transaction(
        self,
        wallet: str,
        sig_info: Dict[str, Any],
    ) -> List[SwapSignal]:
        """Fetch one transaction and feed its purchases to the tracker."""
        signature = sig_info.get("signature")
        if not signature or signature in self.seen_signatures:
            return []

        if sig_info.get("err") is not None:
            # Failed on chain, balances unchanged
            self.seen_signatures.add(signature)
            return []

        record = await self.ledger.get_transaction(signature)
        if record is None:
            logger.debug(f"Transaction {signature} not available yet")
            return []

        self.metrics.record_tx_processed()
        signals = []
        oldest = self._clock() - self.max_event_age
        for event in extract_purchases(record, wallet, self.ignore_mints):
            if event.observed_at < oldest:
                logger.debug(
                    f"Ignoring stale purchase of {event.token_mint} by {event.wallet} in {signature}"
                )
                continue
            self.metrics.record_purchase()
            logger.debug(f"Purchase: {event.wallet} bought {event.amount} of {event.token_mint}")
            signal = self.tracker.record(event)
            if signal:
                signals.append(signal)

        self.seen_signatures.add(signature)
        return signals

    async def handle_signal(self, signal: SwapSignal) -> Optional[SwapResult]:
        """Run one swap for a signal. Errors are logged, never raised."""
        self.metrics.record_signal()
        logger.info(
            f"Multiple wallets bought token: {signal.token_mint} "
            f"({len(signal.wallets)} wallets). Initiating swap..."
        )

        try:
            result = await self.executor.execute(signal.token_mint)
        except Exception as e:
            self.metrics.record_swap(False)
            logger.error(f"Error swapping token {signal.token_mint}: {e}", exc_info=True)
            return None

        self.metrics.record_swap(result.success)
        self._results.append(result)
        return result

    @property
    def results(self) -> List[SwapResult]:
        """Most recent swap results, oldest first."""
        return list(self._results)

    def get_stats(self) -> dict:
        """Get scheduler statistics."""
        return {
            "state": self.state.value,
            "running": self._running,
            "wallets": len(self.wallets),
            "swaps": len(self._results),
            "seen_signatures": len(self.seen_signatures),
        }
