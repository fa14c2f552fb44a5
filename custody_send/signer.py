"""
Custodial signer protocol — the secrets boundary.

The signer holds key material on the user's behalf. This process never
sees private keys: it hands over an unsigned transaction plus a reason
string, the signer shows the user an approval prompt, and returns a
detached signature as hex.

The same signer answers wallet lookups: with no email it returns the
signed-in user's wallet, with an email it returns the wallet bound to
that identity.

Concrete implementations:
    - HttpCustodialSigner (REST, in custodial_http.py)
    - FakeSigner (tests)

Raw responses are validated against JSON schemas before use. The bound
email is taken only from the structured ``user.email`` / ``email``
fields of the response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import jsonschema  # type: ignore[import-untyped]
from solders.transaction import VersionedTransaction

from custody_send.errors import SigningFailed

SIGNER_SUCCESS = "SUCCESS"
SIGNER_FAILED = "FAILED"
USER_REQUEST_DENIED = "USER_REQUEST_DENIED"
USER_CONSENT_DENIED = "USER_CONSENT_DENIED"

DENIAL_STATUSES = frozenset({USER_REQUEST_DENIED, USER_CONSENT_DENIED})

WALLET_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["status"],
    "properties": {
        "status": {"type": "string"},
        "wallet": {
            "type": "object",
            "properties": {"solAddress": {"type": "string"}},
        },
        "user": {
            "type": "object",
            "properties": {"email": {"type": "string"}},
        },
        "email": {"type": "string"},
    },
}

SIGN_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["status"],
    "properties": {
        "status": {"type": "string"},
        "signature": {"type": "string"},
        "transaction": {"type": "string"},
    },
}


@dataclass(frozen=True)
class WalletLookup:
    """Result of a wallet lookup.

    Attributes:
        status: Signer status ("SUCCESS" or a failure status).
        address: Base58 ledger address. None if the lookup failed.
        email: Email bound to the wallet, from structured fields only.
    """

    status: str
    address: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class SignResponse:
    """Result of a signing request.

    Attributes:
        status: SUCCESS, FAILED, USER_REQUEST_DENIED or USER_CONSENT_DENIED.
        signature: Hex signature, optionally "0x"-prefixed.
        transaction: Base64 signed transaction, if the signer sent one.
    """

    status: str
    signature: str | None = None
    transaction: str | None = None


@runtime_checkable
class CustodialSigner(Protocol):
    """Interface for the external custodial signer."""

    async def get_wallet(self, email: str | None = None) -> WalletLookup:
        """Look up the wallet for the signed-in user, or bound to ``email``."""
        ...

    async def sign_transaction(
        self, transaction: VersionedTransaction, reason: str
    ) -> SignResponse:
        """Ask the user to approve signing ``transaction``.

        Suspends until the user answers; callers bound the wait.
        """
        ...


def _validated(data: Any, schema: dict[str, Any], what: str) -> dict[str, Any]:
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise SigningFailed(
            f"malformed {what} response from signer",
            details={"reason": exc.message},
        ) from None
    return data


def parse_wallet_response(data: Any) -> WalletLookup:
    """Build a WalletLookup from a raw signer response.

    Raises:
        SigningFailed: If the response does not match the wallet schema.
    """
    body = _validated(data, WALLET_RESPONSE_SCHEMA, "wallet")
    wallet = body.get("wallet") or {}
    user = body.get("user") or {}
    email = user.get("email") or body.get("email")
    return WalletLookup(
        status=body["status"],
        address=wallet.get("solAddress") or None,
        email=email or None,
    )


def parse_sign_response(data: Any) -> SignResponse:
    """Build a SignResponse from a raw signer response.

    Raises:
        SigningFailed: If the response does not match the sign schema.
    """
    body = _validated(data, SIGN_RESPONSE_SCHEMA, "sign")
    return SignResponse(
        status=body["status"],
        signature=body.get("signature") or None,
        transaction=body.get("transaction") or None,
    )
