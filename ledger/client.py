"""Solana JSON-RPC ledger client."""

import asyncio
import base64
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_COMMITMENT = "confirmed"
CONFIRMED_STATUSES = ("confirmed", "finalized")


class LedgerError(Exception):
    """Base error for ledger access failures."""


class RpcError(LedgerError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, method: str, error: Any):
        self.method = method
        self.error = error
        if isinstance(error, dict):
            message = f"{method}: {error.get('message', error)} (code {error.get('code')})"
        else:
            message = f"{method}: {error}"
        super().__init__(message)


class TransactionFailed(LedgerError):
    """A submitted transaction landed but failed on chain."""

    def __init__(self, signature: str, error: Any):
        self.signature = signature
        self.error = error
        super().__init__(f"Transaction {signature} failed: {error}")


class ConfirmationTimeout(LedgerError):
    """A submitted transaction was not confirmed in time."""

    def __init__(self, signature: str, timeout: float):
        self.signature = signature
        self.timeout = timeout
        super().__init__(f"Transaction {signature} not confirmed after {timeout:.0f}s")


class LedgerClient:
    """
    Async JSON-RPC client for the reads and writes the pipeline needs.

    Provides methods for:
    - Listing recent signatures for a wallet
    - Fetching confirmed transactions
    - Fetching account data
    - Submitting signed transactions and awaiting confirmation

    Transport and RPC failures raise LedgerError subclasses; callers decide
    whether to skip or abort.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        max_concurrent: int = 5,
        commitment: str = DEFAULT_COMMITMENT,
        confirm_poll_interval: float = 0.5,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.commitment = commitment
        self.confirm_poll_interval = confirm_poll_interval
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._http_client: Optional[httpx.AsyncClient] = None

        # Stats
        self._requests = 0
        self._errors = 0

    async def start(self):
        """Start the ledger client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        logger.info(f"Ledger client started ({self.rpc_url.split('?')[0]})")

    async def stop(self):
        """Stop the ledger client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.info("Ledger client stopped")

    async def __aenter__(self) -> "LedgerClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call and return its ``result``."""
        if self._http_client is None:
            raise LedgerError("Ledger client not started")

        async with self._semaphore:
            self._requests += 1
            payload = {
                "jsonrpc": "2.0",
                "id": self._requests,
                "method": method,
                "params": params,
            }

            try:
                response = await self._http_client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                self._errors += 1
                raise LedgerError(f"{method} request failed: {e}") from e

            if not isinstance(data, dict):
                self._errors += 1
                raise LedgerError(f"{method}: unexpected response body {data!r}")

            if "error" in data:
                self._errors += 1
                raise RpcError(method, data["error"])

            return data.get("result")

    async def get_signatures(
        self,
        address: str,
        limit: int = 20,
        before: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Get recent signatures for an address, most recent first."""
        options: Dict[str, Any] = {"limit": limit, "commitment": self.commitment}
        if before:
            options["before"] = before

        result = await self._rpc_call("getSignaturesForAddress", [address, options])
        return result or []

    async def get_transaction(
        self,
        signature: str,
        max_supported_version: int = 0,
    ) -> Optional[Dict[str, Any]]:
        """
        Get a confirmed transaction.

        Returns None when the node does not have it (not yet confirmed or
        pruned).
        """
        params = [
            signature,
            {
                "encoding": "json",
                "commitment": self.commitment,
                "maxSupportedTransactionVersion": max_supported_version,
            },
        ]
        return await self._rpc_call("getTransaction", params)

    async def get_account_info(self, address: str) -> Optional[Dict[str, Any]]:
        """Get raw account info (base64 data), or None if the account does not exist."""
        result = await self._rpc_call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.commitment}],
        )
        return (result or {}).get("value")

    async def get_account_data(self, address: str) -> Optional[bytes]:
        """Get decoded account data bytes, or None if the account does not exist."""
        return decode_account_data(await self.get_account_info(address))

    async def get_multiple_accounts(
        self,
        addresses: List[str],
    ) -> List[Optional[Dict[str, Any]]]:
        """Get raw account info for several accounts in one call."""
        result = await self._rpc_call(
            "getMultipleAccounts",
            [addresses, {"encoding": "base64", "commitment": self.commitment}],
        )
        values = (result or {}).get("value") or []
        if len(values) != len(addresses):
            raise LedgerError(
                f"getMultipleAccounts returned {len(values)} accounts for {len(addresses)} addresses"
            )
        return values

    async def get_latest_blockhash(self) -> str:
        """Get the latest blockhash."""
        result = await self._rpc_call(
            "getLatestBlockhash",
            [{"commitment": self.commitment}],
        )
        try:
            return result["value"]["blockhash"]
        except (KeyError, TypeError) as e:
            raise LedgerError(f"Malformed getLatestBlockhash result: {result}") from e

    async def send_transaction(self, raw_transaction: bytes) -> str:
        """Submit a signed, serialized transaction. Returns its signature."""
        params = [
            base64.b64encode(raw_transaction).decode("ascii"),
            {
                "encoding": "base64",
                "skipPreflight": False,
                "preflightCommitment": self.commitment,
            },
        ]
        signature = await self._rpc_call("sendTransaction", params)
        if not signature:
            raise LedgerError("sendTransaction returned no signature")
        return signature

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        """Get the status of one signature, or None if unknown to the node."""
        result = await self._rpc_call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        statuses = (result or {}).get("value") or []
        return statuses[0] if statuses else None

    async def confirm_transaction(self, signature: str, timeout: float = 60.0) -> str:
        """
        Poll until ``signature`` reaches confirmed commitment.

        Raises:
            TransactionFailed: the transaction landed with an error
            ConfirmationTimeout: not confirmed within ``timeout`` seconds
        """
        deadline = time.monotonic() + timeout

        while True:
            status = await self.get_signature_status(signature)
            if status:
                if status.get("err") is not None:
                    raise TransactionFailed(signature, status["err"])
                if status.get("confirmationStatus") in CONFIRMED_STATUSES:
                    return signature

            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(signature, timeout)

            await asyncio.sleep(self.confirm_poll_interval)

    async def submit_and_confirm(self, raw_transaction: bytes, timeout: float = 60.0) -> str:
        """Submit a signed transaction and block until it is confirmed."""
        signature = await self.send_transaction(raw_transaction)
        logger.debug(f"Submitted {signature}, awaiting confirmation")
        return await self.confirm_transaction(signature, timeout=timeout)

    def get_stats(self) -> dict:
        """Get client statistics."""
        return {
            "requests": self._requests,
            "errors": self._errors,
            "error_rate_pct": (
                self._errors / self._requests * 100
                if self._requests > 0
                else 0
            ),
        }


def decode_account_data(account: Optional[Dict[str, Any]]) -> Optional[bytes]:
    """Decode the ``data`` field of a base64-encoded account info."""
    if not account:
        return None

    data = account.get("data")
    if isinstance(data, list) and data:
        encoded = data[0]
    elif isinstance(data, str):
        encoded = data
    else:
        raise LedgerError(f"Unsupported account data encoding: {type(data).__name__}")

    try:
        return base64.b64decode(encoded)
    except ValueError as e:
        raise LedgerError(f"Invalid base64 account data: {e}") from e
