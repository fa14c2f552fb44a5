"""
HTTP custodial signer — REST client implementing CustodialSigner.

Endpoints (relative to ``base_url``):
    POST /v3/getWallet              → {status, wallet: {solAddress}, user?: {email}}
    POST /v2/app/sign/transaction   → {status, signature?, transaction?}

The unsigned transaction is sent as its version-prefixed message bytes,
hex-encoded with a "0x" prefix, together with the reason string the
signer shows on its approval prompt. The signer never returns key
material; only a detached signature.

A non-2xx response that still carries a JSON ``status`` (e.g. a denial)
is parsed like a success body so the status reaches the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from solders.message import to_bytes_versioned
from solders.transaction import VersionedTransaction

from custody_send.config import Settings
from custody_send.errors import ConfigurationError, NetworkError, SigningFailed
from custody_send.signer import (
    SignResponse,
    WalletLookup,
    parse_sign_response,
    parse_wallet_response,
)

logger = logging.getLogger(__name__)

WALLET_PATH = "/v3/getWallet"
SIGN_PATH = "/v2/app/sign/transaction"


class HttpCustodialSigner:
    """Custodial signer reached over HTTPS.

    Args:
        base_url: Signer API base URL.
        app_id: Application id registered with the signer.
        api_key: Optional API key, sent as ``x-api-key``.
        user_email: Email of the signed-in user, if known. Used for
            ``get_wallet()`` without an explicit email and for signing.
        timeout_s: Per-request timeout. The signer holds the sign request
            open while the user decides, so keep this generous.
    """

    def __init__(
        self,
        *,
        base_url: str,
        app_id: str,
        api_key: str | None = None,
        user_email: str | None = None,
        timeout_s: float = 300.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._app_id = app_id
        self._api_key = api_key
        self._user_email = user_email
        self._timeout_s = timeout_s

    @classmethod
    def from_settings(
        cls, settings: Settings, *, user_email: str | None = None
    ) -> HttpCustodialSigner:
        """Raises ConfigurationError if no signer app id is configured."""
        if not settings.signer_app_id:
            raise ConfigurationError(
                "custodial signer app id not configured",
                details={"setting": "SIGNER_APP_ID"},
            )
        return cls(
            base_url=settings.signer_api_url,
            app_id=settings.signer_app_id,
            api_key=settings.signer_api_key,
            user_email=user_email,
            timeout_s=settings.sign_timeout_s,
        )

    @property
    def user_email(self) -> str | None:
        return self._user_email

    def bind_user(self, email: str | None) -> None:
        """Set the signed-in user for subsequent calls."""
        self._user_email = email

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-app-id": self._app_id,
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    async def get_wallet(self, email: str | None = None) -> WalletLookup:
        target = email or self._user_email
        body: dict[str, Any] = {"appId": self._app_id}
        if target:
            body["user"] = {"email": target}
        data = await self._post(WALLET_PATH, body)
        lookup = parse_wallet_response(data)
        logger.info("Wallet lookup | status=%s found=%s", lookup.status, bool(lookup.address))
        return lookup

    async def sign_transaction(
        self, transaction: VersionedTransaction, reason: str
    ) -> SignResponse:
        message_hex = "0x" + to_bytes_versioned(transaction.message).hex()
        body: dict[str, Any] = {
            "appId": self._app_id,
            "transactionObject": {"serializedTransactionMessage": message_hex},
            "reason": reason,
        }
        if self._user_email:
            body["user"] = {"email": self._user_email}
        data = await self._post(SIGN_PATH, body)
        response = parse_sign_response(data)
        logger.info("Sign request answered | status=%s", response.status)
        return response

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST ``body`` and return the JSON object response.

        Raises:
            NetworkError: On timeout or connection failure.
            SigningFailed: On an HTTP error without a status body, or a
                response that is not a JSON object.
        """
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.post(url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"signer request timed out after {self._timeout_s}s",
                details={"url": url, "timeout_s": self._timeout_s},
            ) from e
        except httpx.ConnectError as e:
            raise NetworkError(
                f"failed to connect to {url}",
                details={"url": url},
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"signer HTTP error: {e}",
                details={"url": url, "error": str(e)},
            ) from e

        try:
            result = response.json()
        except json.JSONDecodeError as e:
            raise SigningFailed(
                "signer response was not valid JSON",
                details={
                    "url": url,
                    "status_code": response.status_code,
                    "body_preview": response.text[:200] if response.text else "",
                },
            ) from e

        if not isinstance(result, dict):
            raise SigningFailed(
                "signer response JSON was not an object",
                details={"url": url, "type": type(result).__name__},
            )

        if response.status_code >= 400 and not isinstance(result.get("status"), str):
            logger.warning("Signer HTTP error | url=%s status_code=%d", url, response.status_code)
            raise SigningFailed(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                details={
                    "url": url,
                    "status_code": response.status_code,
                    "reason": response.reason_phrase,
                },
            )
        return result
