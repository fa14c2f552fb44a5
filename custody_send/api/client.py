"""
Client for the transfer construction API.

The send flow calls the server-side builder through this client. Error
bodies ({"error", "message"?}) are turned back into typed errors:
    - a message reading as a lack of fee funds → InsufficientGas
    - HTTP 400 → ValidationError
    - an explicit "code" field wins over both heuristics
    - anything else → NetworkError
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any

import httpx

from custody_send.builder import BuiltTransfer
from custody_send.classify import OutcomeKind, classify
from custody_send.errors import (
    ConfigurationError,
    InsufficientGas,
    NetworkError,
    TransferError,
    ValidationError,
)
from custody_send.ledger.token import decode_transfer_amount
from custody_send.models import UnsignedTransactionMessage

logger = logging.getLogger(__name__)

TRANSFER_PATH = "/api/token-transfer"
BALANCES_PATH = "/api/balances"


def _error_from_payload(payload: dict[str, Any], status_code: int) -> TransferError:
    message = str(payload.get("message") or payload.get("error") or "request failed")
    details = {"status_code": status_code, **payload}
    kind = classify({**payload, "status": status_code})
    if kind is OutcomeKind.INSUFFICIENT_GAS:
        return InsufficientGas(message, details=details)
    if kind is OutcomeKind.INVALID_INPUT:
        return ValidationError(message, details=details)
    if kind is OutcomeKind.CONFIG_ERROR:
        return ConfigurationError(message, details=details)
    return NetworkError(message, details=details)


class TransferApiClient:
    """HTTP client for the transfer API.

    Args:
        base_url: API base URL, e.g. "http://localhost:8000".
        timeout_s: Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, *, timeout_s: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    async def build(self, from_address: str, to_address: str, amount: str) -> BuiltTransfer:
        """Request an unsigned transfer. Same contract as TransferBuilder.build."""
        body = {"from": from_address, "to": to_address, "amount": amount}
        data = await self._request("POST", TRANSFER_PATH, json=body)

        try:
            unsigned = UnsignedTransactionMessage.from_base64(data["transaction"])
            amount_units = decode_transfer_amount(bytes(unsigned.instructions[-1].data))
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise NetworkError(
                "transfer API returned an unreadable transaction",
                details={"error": str(exc)},
            ) from exc

        return BuiltTransfer(
            serialized_transaction=data["transaction"],
            human_message=str(data.get("message", "")),
            unsigned=unsigned,
            amount_units=amount_units,
            creates_token_account=len(unsigned.instructions) > 1,
            last_valid_block_height=None,
        )

    async def balances(self, address: str) -> tuple[Decimal, Decimal]:
        """(native, token) balances as rounded by the API."""
        data = await self._request("GET", BALANCES_PATH, params={"address": address})
        return Decimal(str(data["solBalance"])), Decimal(str(data["usdcBalance"]))

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(
                f"transfer API unreachable: {e}",
                details={"url": url, "error": str(e)},
            ) from e

        try:
            payload = response.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.status_code >= 400:
            error = _error_from_payload(payload, response.status_code)
            logger.warning(
                "Transfer API error | url=%s status_code=%d kind=%s error=%s",
                url,
                response.status_code,
                type(error).__name__,
                error.message,
            )
            raise error
        return payload
