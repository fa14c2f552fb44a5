"""
Balance cache — advisory native/token balances for the session wallet.

``fetch_balances`` queries the native balance by address and the token
balance through the derived sub-account. A missing sub-account is the
normal state of a wallet that never held the token: its balance is zero.

``BalanceCache.refresh`` never raises. Any ledger failure degrades to a
zero snapshot so the UI is never blocked on a balance read. Writes go
through the SessionStore and are last-write-wins; the values are display
data, not ledger state.
"""

from __future__ import annotations

import logging
import sqlite3
from decimal import Decimal

import httpx
from solders.pubkey import Pubkey

from custody_send.ledger.client import CONFIRMED, AccountNotFound, LedgerClient, RpcError
from custody_send.ledger.token import LAMPORTS_PER_SOL, derive_token_account
from custody_send.models import TOKEN_DECIMALS, BalanceSnapshot
from custody_send.resolver import parse_address
from custody_send.session import SessionStore

logger = logging.getLogger(__name__)


async def fetch_balances(
    ledger: LedgerClient,
    owner: str,
    mint: Pubkey,
    decimals: int = TOKEN_DECIMALS,
) -> BalanceSnapshot:
    """Live balances for ``owner``.

    Raises:
        ValidationError: ``owner`` is not a ledger address.
        RpcError / httpx.HTTPError: The ledger could not be queried.
    """
    owner_key = parse_address(owner)
    lamports = await ledger.get_balance(str(owner_key), CONFIRMED)

    token_account = derive_token_account(owner_key, mint)
    try:
        token = await ledger.get_token_account_balance(str(token_account), CONFIRMED)
    except AccountNotFound:
        token_units, token_decimals = 0, decimals
    else:
        token_units, token_decimals = token.amount, token.decimals

    return BalanceSnapshot(
        address=str(owner_key),
        native_balance=Decimal(lamports) / LAMPORTS_PER_SOL,
        token_balance=Decimal(token_units).scaleb(-token_decimals),
    )


class BalanceCache:
    """Keeps the session's balance snapshot current.

    Args:
        ledger: Ledger client.
        mint: Token mint.
        store: Session store that owns the persisted snapshot.
        decimals: Token decimals used when the sub-account is missing.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        mint: Pubkey,
        store: SessionStore,
        *,
        decimals: int = TOKEN_DECIMALS,
    ) -> None:
        self._ledger = ledger
        self._mint = mint
        self._store = store
        self._decimals = decimals

    def load(self) -> BalanceSnapshot | None:
        """The cached snapshot, possibly stale. None if never fetched."""
        cached = self._store.load()
        return cached.snapshot if cached is not None else None

    def save(self, snapshot: BalanceSnapshot) -> None:
        self._store.save_snapshot(snapshot)

    async def refresh(self, address: str) -> BalanceSnapshot:
        """Fetch live balances and cache them. Never raises."""
        try:
            snapshot = await fetch_balances(self._ledger, address, self._mint, self._decimals)
        except (RpcError, httpx.HTTPError) as exc:
            logger.warning("Balance refresh failed | address=%s error=%s", address, exc)
            snapshot = BalanceSnapshot.zero(address)
        except Exception:
            logger.exception("Balance refresh failed unexpectedly | address=%s", address)
            snapshot = BalanceSnapshot.zero(address)

        try:
            self.save(snapshot)
        except sqlite3.Error as exc:
            logger.warning("Balance snapshot not cached | address=%s error=%s", address, exc)
        return snapshot
