"""
Ledger client protocol — the network boundary.

Defines the interface that the builder, broadcaster and balance cache
depend on, not a concrete implementation. This keeps those components
testable and keeps HTTP calls out of business logic.

Concrete implementations:
    - SolanaRpcClient (JSON-RPC over an injectable transport)
    - FakeLedger (tests)

Expected failures are either captured in result objects or raised as
the two distinct exception types defined here:
    - AccountNotFound: a queried account does not exist on-ledger. For
      token sub-accounts this means "balance zero", not an error.
    - RpcError: the node answered with a JSON-RPC error object.

Transport failures (httpx.HTTPError) propagate unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# Commitment levels used by this system.
FINALIZED = "finalized"
CONFIRMED = "confirmed"


# =========================================================================
# Exceptions
# =========================================================================


class AccountNotFound(Exception):
    """The requested account does not exist on-ledger."""

    def __init__(self, address: str) -> None:
        super().__init__(f"account not found: {address}")
        self.address = address


class RpcError(Exception):
    """A JSON-RPC error object returned by the node.

    Attributes:
        code: JSON-RPC error code (e.g. -32002 for preflight failure).
        message: Node-supplied message.
        data: Optional structured data (simulation logs, err object).
    """

    def __init__(self, code: int | None, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def logs(self) -> list[str]:
        """Simulation logs attached to a preflight failure, if any."""
        if isinstance(self.data, dict):
            logs = self.data.get("logs")
            if isinstance(logs, list):
                return [str(line) for line in logs]
        return []

    def describe(self) -> str:
        """Message plus logs, for keyword classification and diagnostics."""
        parts = [self.message]
        if isinstance(self.data, dict) and self.data.get("err") is not None:
            parts.append(f"err={self.data['err']}")
        parts.extend(self.logs())
        return "; ".join(parts)


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class LatestBlockhash:
    """A recent blockhash and the last block height at which it is valid."""

    blockhash: str
    last_valid_block_height: int


@dataclass(frozen=True)
class TokenAccountBalance:
    """Raw token balance of a sub-account.

    Attributes:
        amount: Balance in smallest units.
        decimals: Decimal places declared by the mint.
    """

    amount: int
    decimals: int


@dataclass(frozen=True)
class SignatureStatus:
    """Status of a submitted transaction.

    Attributes:
        found: Whether the node knows the signature at all.
        confirmation_status: "processed", "confirmed" or "finalized".
            None if not found.
        slot: Slot the transaction landed in. None if not found.
        err: Execution error object. None on success or when not found.
    """

    found: bool
    confirmation_status: str | None = None
    slot: int | None = None
    err: Any = None


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for Solana network operations."""

    async def get_latest_blockhash(self, commitment: str = FINALIZED) -> LatestBlockhash:
        ...

    async def get_balance(self, address: str, commitment: str = CONFIRMED) -> int:
        """Native balance in lamports."""
        ...

    async def account_exists(self, address: str, commitment: str = CONFIRMED) -> bool:
        ...

    async def get_token_account_balance(
        self, address: str, commitment: str = CONFIRMED
    ) -> TokenAccountBalance:
        """Raises AccountNotFound if the sub-account does not exist."""
        ...

    async def send_transaction(
        self,
        wire_bytes: bytes,
        *,
        skip_preflight: bool = False,
        max_retries: int = 3,
    ) -> str:
        """Submit a signed transaction. Returns its signature (base58).

        Raises RpcError when the node rejects it (e.g. preflight failure).
        """
        ...

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        ...

    async def get_block_height(self, commitment: str = CONFIRMED) -> int:
        ...
