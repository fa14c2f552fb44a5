"""
Send flow — the client-side orchestration of one transfer.

``send(identifier, amount)`` for the connected wallet:
    1. Check the amount, then resolve the recipient (address as-is,
       email via the signer).
    2. Build the unsigned transfer (server-side builder or in-process).
    3. Sign through the custodial signer, bounded by ``sign_timeout_s``.
    4. Broadcast and wait for confirmation.
    5. Refresh the balance snapshot.

Failures never escape ``send``: each is classified and returned on the
SendResult with the user-facing Outcome. Only one send may be in flight;
the guard is released in ``finally`` so an abandoned or cancelled send
never blocks the next attempt.

Session lifecycle:
    - connect(email=None): sign in through the signer and persist the
      wallet session.
    - restore(): serve the cached session and snapshot immediately and
      schedule a live balance refresh.
    - logout(): drop the session and its snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from custody_send.api.client import TransferApiClient
from custody_send.balances import BalanceCache
from custody_send.broadcaster import Broadcaster
from custody_send.builder import BuiltTransfer
from custody_send.classify import Outcome, OutcomeKind, classify, describe
from custody_send.config import Settings
from custody_send.custodial_http import HttpCustodialSigner
from custody_send.errors import ResolutionError, SigningFailed, TransferError
from custody_send.ledger import HttpxTransport, LedgerClient, SolanaRpcClient
from custody_send.models import (
    BroadcastReceipt,
    TransferIntent,
    WalletSession,
    parse_amount,
)
from custody_send.resolver import AddressResolver, is_valid_address
from custody_send.session import CachedWallet, SessionStore
from custody_send.signer import SIGNER_SUCCESS, CustodialSigner
from custody_send.signing import SigningCoordinator, compose_reason

logger = logging.getLogger(__name__)

CONFIRMED_MESSAGE = "Transaction confirmed on Solana!"


class TransferSource(Protocol):
    """Anything that builds unsigned transfers: TransferBuilder in-process,
    or TransferApiClient over HTTP."""

    async def build(self, from_address: str, to_address: str, amount: str) -> BuiltTransfer:
        ...


@dataclass(frozen=True)
class SendResult:
    """Outcome of one send attempt.

    Exactly one of ``receipt`` (success) and ``outcome`` (failure) is set.
    ``error`` keeps the typed failure for callers that need more than the
    outcome kind.
    """

    receipt: BroadcastReceipt | None = None
    explorer_url: str | None = None
    outcome: Outcome | None = None
    error: TransferError | None = None
    intent: TransferIntent | None = None

    @property
    def ok(self) -> bool:
        return self.receipt is not None

    @property
    def message(self) -> str:
        if self.outcome is not None:
            return self.outcome.message
        return CONFIRMED_MESSAGE


class SendFlow:
    """Client session plus the send pipeline.

    Args:
        signer: Custodial signer (sign-in, email lookup, signing).
        builder: Source of unsigned transfers.
        broadcaster: Submits and confirms signed transfers.
        balances: Balance cache for the session wallet.
        store: Session store; the single owner of session state.
        settings: Token symbol, timeouts and user-facing links.
        resolver: Recipient resolver. Defaults to one over ``signer``.
        coordinator: Signing coordinator. Defaults to one over ``signer``.
    """

    def __init__(
        self,
        *,
        signer: CustodialSigner,
        builder: TransferSource,
        broadcaster: Broadcaster,
        balances: BalanceCache,
        store: SessionStore,
        settings: Settings,
        resolver: AddressResolver | None = None,
        coordinator: SigningCoordinator | None = None,
    ) -> None:
        self._signer = signer
        self._builder = builder
        self._broadcaster = broadcaster
        self._balances = balances
        self._store = store
        self._settings = settings
        self._resolver = resolver or AddressResolver(signer)
        self._coordinator = coordinator or SigningCoordinator(
            signer, timeout_s=settings.sign_timeout_s
        )
        self._session: WalletSession | None = None
        self._sending = False
        self._refresh_task: asyncio.Task | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        signer: CustodialSigner | None = None,
        ledger: LedgerClient | None = None,
    ) -> SendFlow:
        """Wire the flow against the transfer API and a ledger client.

        Without an explicit ``signer`` or ``ledger``, the HTTP custodial
        signer and the JSON-RPC client are built from ``settings``.

        Raises:
            ConfigurationError: If the token mint or signer app id is
                missing or malformed.
        """
        mint = settings.mint()
        if signer is None:
            signer = HttpCustodialSigner.from_settings(settings)
        if ledger is None:
            ledger = SolanaRpcClient(
                settings.solana_rpc_url,
                transport=HttpxTransport(timeout=settings.rpc_timeout_s),
            )
        store = SessionStore(settings.cache_db_path)
        return cls(
            signer=signer,
            builder=TransferApiClient(settings.transfer_api_url, timeout_s=settings.rpc_timeout_s),
            broadcaster=Broadcaster(
                ledger,
                max_retries=settings.submit_max_retries,
                confirm_timeout_s=settings.confirm_timeout_s,
                poll_interval_s=settings.confirm_poll_interval_s,
            ),
            balances=BalanceCache(
                ledger, mint, store, decimals=settings.token_decimals
            ),
            store=store,
            settings=settings,
        )

    @property
    def session(self) -> WalletSession | None:
        return self._session

    @property
    def sending(self) -> bool:
        return self._sending

    @property
    def refresh_task(self) -> asyncio.Task | None:
        """The background refresh scheduled by restore(), if any."""
        return self._refresh_task

    # -----------------------------------------------------------------
    # Session lifecycle
    # -----------------------------------------------------------------

    async def connect(self, email: str | None = None) -> WalletSession:
        """Sign in through the custodial signer and persist the session.

        Raises:
            SigningFailed: The signer did not return a wallet.
            ResolutionError: The returned address is malformed.
        """
        try:
            lookup = await asyncio.wait_for(
                self._signer.get_wallet(email=email), timeout=self._settings.sign_timeout_s
            )
        except TimeoutError:
            raise SigningFailed(
                "wallet connection timed out",
                details={"timeout_s": self._settings.sign_timeout_s},
            ) from None

        if lookup.status != SIGNER_SUCCESS or not lookup.address:
            logger.warning("Wallet connection failed | status=%s", lookup.status)
            raise SigningFailed("wallet connection failed", details={"status": lookup.status})
        if not is_valid_address(lookup.address):
            raise ResolutionError(
                "signer returned an invalid wallet address",
                details={"address": lookup.address},
            )

        session = WalletSession(address=lookup.address.strip(), bound_email=lookup.email or email)
        self._store.save_session(session)
        self._session = session
        logger.info("Wallet connected | address=%s", session.address)

        await self._balances.refresh(session.address)
        return session

    def restore(self) -> CachedWallet | None:
        """Load the cached session and schedule a live balance refresh.

        Must be called with a running event loop. The returned snapshot
        may be stale; the refresh replaces it in the store.
        """
        cached = self._store.load()
        if cached is None:
            return None
        self._session = cached.session
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._balances.refresh(cached.session.address)
        )
        return cached

    def logout(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
        self._store.clear()
        self._session = None
        logger.info("Logged out")

    # -----------------------------------------------------------------
    # Send
    # -----------------------------------------------------------------

    def _failure(self, error: TransferError, intent: TransferIntent | None = None) -> SendResult:
        kind = classify(error)
        logger.warning(
            "Send failed | kind=%s error_type=%s error=%s details=%s",
            kind,
            type(error).__name__,
            error.message,
            error.details,
        )
        outcome = describe(kind, error.message, gas_faucet_url=self._settings.gas_faucet_url)
        return SendResult(outcome=outcome, error=error, intent=intent)

    async def send(self, identifier: str, amount: str) -> SendResult:
        """Send ``amount`` tokens to ``identifier`` from the session wallet."""
        session = self._session
        if session is None:
            return SendResult(
                outcome=describe(OutcomeKind.INVALID_INPUT, "Connect a wallet first")
            )
        if self._sending:
            return SendResult(
                outcome=describe(OutcomeKind.NETWORK_ERROR, "a send is already in progress")
            )

        self._sending = True
        intent: TransferIntent | None = None
        try:
            parse_amount(str(amount))
            resolved = await self._resolver.resolve(identifier)
            intent = TransferIntent(
                from_address=session.address,
                to_identifier=identifier,
                resolved_to_address=resolved.address,
                amount=str(amount).strip(),
            )
            built = await self._builder.build(
                intent.from_address, intent.resolved_to_address, intent.amount
            )
            reason = compose_reason(
                intent.amount, identifier, resolved.address, self._settings.token_symbol
            )
            signed = await self._coordinator.sign(built.serialized_transaction, reason)
            receipt = await self._broadcaster.submit(
                signed, last_valid_block_height=built.last_valid_block_height
            )
        except TransferError as exc:
            return self._failure(exc, intent)
        finally:
            self._sending = False

        logger.info(
            "Send confirmed | id=%s to=%s amount=%s",
            receipt.transaction_id,
            intent.resolved_to_address,
            intent.amount,
        )
        await self._balances.refresh(session.address)
        return SendResult(
            receipt=receipt,
            explorer_url=self._settings.explorer_url(receipt.transaction_id),
            intent=intent,
        )
