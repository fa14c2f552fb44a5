"""
Broadcaster — submits a signed transaction and waits for confirmation.

``submit(signed)`` does:
    1. Serialize the signed transaction to wire bytes.
    2. sendTransaction with preflight enabled. Transport-level failures
       are retried up to ``max_retries`` attempts; node rejections are
       not retried. A retry that the node reports as "already been
       processed" means an earlier attempt landed, and counts as sent.
    3. Poll the signature status until the network reports "confirmed"
       (or "finalized"), the transaction fails, the blockhash expires,
       or ``confirm_timeout_s`` elapses.

A confirmed receipt is terminal: submitting the same transaction again
returns the recorded receipt without touching the network. The most
recent ``MAX_CACHED_RECEIPTS`` receipts are kept.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable
from typing import Callable

import httpx

from custody_send.classify import is_insufficient_gas
from custody_send.errors import (
    BroadcastRejected,
    BroadcastTimeout,
    InsufficientGas,
    NetworkError,
)
from custody_send.ledger.client import LedgerClient, RpcError
from custody_send.models import BroadcastReceipt, SignedTransaction, now_utc

logger = logging.getLogger(__name__)

_CONFIRMED_STATES = frozenset({"confirmed", "finalized"})
_STALE_BLOCKHASH_MARKERS = ("blockhash not found", "block height exceeded")
# A resend after a lost response finds the first submission already landed.
_ALREADY_PROCESSED_MARKER = "already been processed"
# Oldest receipts are evicted past this many.
MAX_CACHED_RECEIPTS = 256


def _rejection(exc: RpcError) -> Exception:
    """Map a node rejection onto the error taxonomy."""
    text = exc.describe()
    details = {"rpc_code": exc.code, "error": exc.message, "logs": exc.logs()}
    if is_insufficient_gas(text):
        return InsufficientGas("insufficient SOL for fees", details=details)
    lowered = text.lower()
    if any(marker in lowered for marker in _STALE_BLOCKHASH_MARKERS):
        details["stale_blockhash"] = True
    return BroadcastRejected(f"transaction rejected: {exc.message}", details=details)


class Broadcaster:
    """Submits signed transactions and waits for "confirmed" commitment.

    Args:
        ledger: Ledger client.
        max_retries: Submission attempts on transport failure; also passed
            to the node as its rebroadcast bound.
        confirm_timeout_s: Upper bound on the confirmation wait.
        poll_interval_s: Delay between status polls.
        sleep: Awaitable sleep, injectable for tests.
        now_fn: RFC3339 UTC clock, injectable for tests.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        max_retries: int = 3,
        confirm_timeout_s: float = 60.0,
        poll_interval_s: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        now_fn: Callable[[], str] | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got: {max_retries}")
        self._ledger = ledger
        self._max_retries = max_retries
        self._confirm_timeout_s = confirm_timeout_s
        self._poll_interval_s = poll_interval_s
        self._sleep = sleep or asyncio.sleep
        self._now_fn = now_fn or now_utc
        self._receipts: OrderedDict[str, BroadcastReceipt] = OrderedDict()

    async def submit(
        self,
        signed: SignedTransaction,
        *,
        last_valid_block_height: int | None = None,
    ) -> BroadcastReceipt:
        """Broadcast ``signed`` and block until it is confirmed.

        Args:
            signed: A fully signed transaction.
            last_valid_block_height: If known, the wait ends early with
                BroadcastTimeout once the chain passes this height.

        Raises:
            InsufficientGas: Preflight failed for lack of fee funds.
            BroadcastRejected: The node refused or the transaction failed.
            BroadcastTimeout: No confirmation in time / blockhash expired.
            NetworkError: Every submission attempt failed in transport.
        """
        existing = self._receipts.get(signed.transaction_id)
        if existing is not None:
            logger.info("Transaction already confirmed | id=%s", existing.transaction_id)
            return existing

        transaction_id = await self._send(signed)
        if transaction_id != signed.transaction_id:
            logger.warning(
                "Node returned a different signature | expected=%s got=%s",
                signed.transaction_id,
                transaction_id,
            )

        try:
            receipt = await asyncio.wait_for(
                self._await_confirmation(transaction_id, last_valid_block_height),
                timeout=self._confirm_timeout_s,
            )
        except TimeoutError:
            logger.warning(
                "Confirmation timed out | id=%s timeout_s=%s",
                transaction_id,
                self._confirm_timeout_s,
            )
            raise BroadcastTimeout(
                "transaction was not confirmed in time",
                details={"transaction_id": transaction_id, "timeout_s": self._confirm_timeout_s},
            ) from None

        self._receipts[signed.transaction_id] = receipt
        while len(self._receipts) > MAX_CACHED_RECEIPTS:
            self._receipts.popitem(last=False)
        logger.info("Transaction confirmed | id=%s slot=%s", transaction_id, receipt.slot)
        return receipt

    async def _send(self, signed: SignedTransaction) -> str:
        wire_bytes = signed.to_bytes()
        last_error: Exception | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                return await self._ledger.send_transaction(
                    wire_bytes, skip_preflight=False, max_retries=self._max_retries
                )
            except RpcError as exc:
                if attempt > 1 and _ALREADY_PROCESSED_MARKER in exc.describe().lower():
                    logger.info(
                        "Earlier attempt already landed | id=%s attempt=%d",
                        signed.transaction_id,
                        attempt,
                    )
                    return signed.transaction_id
                error = _rejection(exc)
                logger.warning(
                    "Transaction rejected | code=%s kind=%s error=%s",
                    exc.code,
                    type(error).__name__,
                    exc.message,
                )
                raise error from exc
            except httpx.HTTPError as exc:
                last_error = exc
                logger.warning(
                    "Submission attempt failed | attempt=%d/%d error=%s",
                    attempt,
                    self._max_retries,
                    exc,
                )
        raise NetworkError(
            f"submission failed after {self._max_retries} attempts",
            details={"attempts": self._max_retries, "error": str(last_error)},
        ) from last_error

    async def _await_confirmation(
        self, transaction_id: str, last_valid_block_height: int | None
    ) -> BroadcastReceipt:
        while True:
            try:
                status = await self._ledger.get_signature_status(transaction_id)
            except (RpcError, httpx.HTTPError) as exc:
                logger.debug("Status poll failed | id=%s error=%s", transaction_id, exc)
            else:
                if status.found and status.err is not None:
                    raise BroadcastRejected(
                        "transaction failed on-ledger",
                        details={"transaction_id": transaction_id, "err": status.err},
                    )
                if status.found and status.confirmation_status in _CONFIRMED_STATES:
                    return BroadcastReceipt(
                        transaction_id=transaction_id,
                        confirmed_at=self._now_fn(),
                        confirmation_status=status.confirmation_status,
                        slot=status.slot,
                    )
                if not status.found and last_valid_block_height is not None:
                    await self._check_expiry(transaction_id, last_valid_block_height)
            await self._sleep(self._poll_interval_s)

    async def _check_expiry(self, transaction_id: str, last_valid_block_height: int) -> None:
        try:
            height = await self._ledger.get_block_height()
        except (RpcError, httpx.HTTPError):
            return
        if height > last_valid_block_height:
            raise BroadcastTimeout(
                "blockhash expired before confirmation",
                details={
                    "transaction_id": transaction_id,
                    "block_height": height,
                    "last_valid_block_height": last_valid_block_height,
                    "stale_blockhash": True,
                },
            )
