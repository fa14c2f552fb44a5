"""
Solana JSON-RPC client — real network implementation of LedgerClient.

Translates JSON-RPC responses into the result types in ``client.py``.
Uses an injectable transport (JsonRpcTransport) so the HTTP layer can be
swapped for test fakes without changing parsing logic.

No retry loops. No secrets. No transfer logic beyond response parsing.

Response parsing targets Solana JSON-RPC 2.0 conventions:
    - Success: {"jsonrpc": "2.0", "result": ..., "id": n}
    - Context-wrapped results: {"result": {"context": {...}, "value": ...}}
    - Errors: {"error": {"code": -32002, "message": "...", "data": {...}}}
"""

from __future__ import annotations

import base64
from typing import Any

from custody_send.ledger.client import (
    CONFIRMED,
    FINALIZED,
    AccountNotFound,
    LatestBlockhash,
    RpcError,
    SignatureStatus,
    TokenAccountBalance,
)
from custody_send.ledger.transport import HttpxTransport, JsonRpcTransport

# JSON-RPC request ID counter (no thread-safety needed on a single event loop)
_REQUEST_ID = 0

# Error messages the node uses for a missing token account.
_MISSING_ACCOUNT_MARKERS = ("could not find account", "invalid param: not a token account")


def _next_request_id() -> int:
    global _REQUEST_ID
    _REQUEST_ID += 1
    return _REQUEST_ID


class SolanaRpcClient:
    """Solana JSON-RPC client implementing the LedgerClient protocol.

    Args:
        url: The JSON-RPC endpoint URL (e.g. "https://api.devnet.solana.com").
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": _next_request_id(),
            "method": method,
            "params": params,
        }
        response = await self._transport.post_json(self._url, payload)
        return _unwrap(response)

    # -----------------------------------------------------------------
    # LedgerClient protocol methods
    # -----------------------------------------------------------------

    async def get_latest_blockhash(self, commitment: str = FINALIZED) -> LatestBlockhash:
        result = await self._call("getLatestBlockhash", [{"commitment": commitment}])
        return _parse_latest_blockhash(result)

    async def get_balance(self, address: str, commitment: str = CONFIRMED) -> int:
        result = await self._call("getBalance", [address, {"commitment": commitment}])
        return _parse_balance(result)

    async def account_exists(self, address: str, commitment: str = CONFIRMED) -> bool:
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": commitment}],
        )
        return _value(result) is not None

    async def get_token_account_balance(
        self, address: str, commitment: str = CONFIRMED
    ) -> TokenAccountBalance:
        try:
            result = await self._call(
                "getTokenAccountBalance", [address, {"commitment": commitment}]
            )
        except RpcError as exc:
            if _is_missing_account(exc):
                raise AccountNotFound(address) from exc
            raise
        return _parse_token_balance(result, address)

    async def send_transaction(
        self,
        wire_bytes: bytes,
        *,
        skip_preflight: bool = False,
        max_retries: int = 3,
    ) -> str:
        """Submit a signed transaction via ``sendTransaction``.

        The preflight simulation runs at "confirmed" commitment. Node-side
        rebroadcast is bounded by ``max_retries``.

        Raises:
            RpcError: On preflight failure or any node-reported error.
        """
        encoded = base64.b64encode(wire_bytes).decode("ascii")
        result = await self._call(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": CONFIRMED,
                    "maxRetries": max_retries,
                },
            ],
        )
        if not isinstance(result, str) or not result:
            raise RpcError(None, "sendTransaction returned no signature", result)
        return result

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        return _parse_signature_status(result)

    async def get_block_height(self, commitment: str = CONFIRMED) -> int:
        result = await self._call("getBlockHeight", [{"commitment": commitment}])
        if not isinstance(result, int):
            raise RpcError(None, "getBlockHeight returned a non-integer", result)
        return result


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _unwrap(response: dict[str, Any]) -> Any:
    """Return the ``result`` member, raising RpcError for error objects."""
    error = response.get("error")
    if error is not None:
        if isinstance(error, dict):
            raise RpcError(
                error.get("code"),
                str(error.get("message", "unknown rpc error")),
                error.get("data"),
            )
        raise RpcError(None, str(error))
    if "result" not in response:
        raise RpcError(None, "response has neither result nor error")
    return response["result"]


def _value(result: Any) -> Any:
    """Strip the {"context", "value"} wrapper used by most methods."""
    if isinstance(result, dict) and "value" in result:
        return result["value"]
    return result


def _is_missing_account(exc: RpcError) -> bool:
    text = exc.message.lower()
    return any(marker in text for marker in _MISSING_ACCOUNT_MARKERS)


def _parse_latest_blockhash(result: Any) -> LatestBlockhash:
    value = _value(result)
    if not isinstance(value, dict) or not value.get("blockhash"):
        raise RpcError(None, "no blockhash in getLatestBlockhash response", result)
    return LatestBlockhash(
        blockhash=value["blockhash"],
        last_valid_block_height=int(value.get("lastValidBlockHeight", 0)),
    )


def _parse_balance(result: Any) -> int:
    value = _value(result)
    if not isinstance(value, int) or value < 0:
        raise RpcError(None, "malformed getBalance response", result)
    return value


def _parse_token_balance(result: Any, address: str) -> TokenAccountBalance:
    value = _value(result)
    if value is None:
        raise AccountNotFound(address)
    if not isinstance(value, dict) or "amount" not in value:
        raise RpcError(None, "malformed getTokenAccountBalance response", result)
    return TokenAccountBalance(
        amount=int(value["amount"]),
        decimals=int(value.get("decimals", 0)),
    )


def _parse_signature_status(result: Any) -> SignatureStatus:
    value = _value(result)
    if not isinstance(value, list) or not value or value[0] is None:
        return SignatureStatus(found=False)
    entry = value[0]
    return SignatureStatus(
        found=True,
        confirmation_status=entry.get("confirmationStatus"),
        slot=entry.get("slot"),
        err=entry.get("err"),
    )
