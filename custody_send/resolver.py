"""
Recipient resolution — identifier → ledger address.

A recipient identifier is whatever the user typed: either a base58
ledger address or an email bound to a custodial wallet.

Classification (pure):
    - Trim the input.
    - Contains "@": email if it matches the local-part/domain pattern,
      is at most 254 characters and has exactly one "@"; else invalid.
    - Otherwise: address if it is 32–44 characters of the base58
      alphabet; else invalid.

Resolution (async):
    - address → used directly.
    - email → wallet lookup at the custodial signer; the returned
      address is re-validated before it is accepted.
    - invalid → ValidationError("invalid recipient").

Only one email lookup may be in flight per resolver. The guard is
released in ``finally`` so a cancelled lookup never blocks the next one.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import StrEnum

from solders.pubkey import Pubkey

from custody_send.errors import (
    RecipientNotFound,
    ResolutionError,
    ResolutionInProgress,
    SigningFailed,
    ValidationError,
)
from custody_send.signer import SIGNER_SUCCESS, CustodialSigner

logger = logging.getLogger(__name__)

EMAIL_MAX_LENGTH = 254

# Base58 alphabet: no 0, O, I or l.
_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


class IdentifierKind(StrEnum):
    ADDRESS = "address"
    EMAIL = "email"
    INVALID = "invalid"


@dataclass(frozen=True)
class ResolvedAddress:
    """A recipient identifier and the address it resolved to."""

    identifier: str
    kind: IdentifierKind
    address: str


def is_valid_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value.strip()))


def is_valid_email(value: str) -> bool:
    email = value.strip()
    if len(email) > EMAIL_MAX_LENGTH:
        return False
    if email.count("@") != 1:
        return False
    return bool(_EMAIL_RE.match(email))


def classify_identifier(identifier: str) -> IdentifierKind:
    """Classify raw user input as an address, an email, or invalid."""
    value = identifier.strip()
    if not value:
        return IdentifierKind.INVALID
    if "@" in value:
        return IdentifierKind.EMAIL if is_valid_email(value) else IdentifierKind.INVALID
    return IdentifierKind.ADDRESS if is_valid_address(value) else IdentifierKind.INVALID


def parse_address(value: str, *, field: str = "address") -> Pubkey:
    """Parse a base58 address into a Pubkey.

    Raises:
        ValidationError: If the value is not a well-formed ledger address.
    """
    text = (value or "").strip()
    if not is_valid_address(text):
        raise ValidationError(f"invalid {field}", details={field: value})
    try:
        return Pubkey.from_string(text)
    except ValueError:
        raise ValidationError(f"invalid {field}", details={field: value}) from None


class AddressResolver:
    """Resolves recipient identifiers, delegating emails to the signer.

    Args:
        signer: The custodial signer used for sign-in; its wallet lookup
            maps an email to the bound address.
        lookup_timeout_s: Upper bound on the wallet lookup. None waits
            indefinitely.
    """

    def __init__(self, signer: CustodialSigner, *, lookup_timeout_s: float | None = 30.0) -> None:
        self._signer = signer
        self._lookup_timeout_s = lookup_timeout_s
        self._lookup_in_flight = False

    @property
    def busy(self) -> bool:
        """True while an email lookup is awaiting the signer."""
        return self._lookup_in_flight

    async def resolve(self, identifier: str) -> ResolvedAddress:
        """Resolve ``identifier`` to a concrete ledger address.

        Raises:
            ValidationError: Malformed identifier.
            RecipientNotFound: Well-formed email with no bound wallet.
            ResolutionError: The signer returned a malformed address.
            ResolutionInProgress: Another email lookup is in flight.
        """
        value = identifier.strip()
        kind = classify_identifier(value)

        if kind is IdentifierKind.INVALID:
            raise ValidationError("invalid recipient", details={"identifier": identifier})

        if kind is IdentifierKind.ADDRESS:
            parse_address(value, field="recipient")
            return ResolvedAddress(identifier=value, kind=kind, address=value)

        address = await self._lookup_email(value)
        return ResolvedAddress(identifier=value, kind=kind, address=address)

    async def _lookup_email(self, email: str) -> str:
        if self._lookup_in_flight:
            raise ResolutionInProgress(
                "a recipient lookup is already in progress", details={"email": email}
            )
        self._lookup_in_flight = True
        try:
            try:
                lookup = await asyncio.wait_for(
                    self._signer.get_wallet(email=email), timeout=self._lookup_timeout_s
                )
            except TimeoutError:
                raise ResolutionError(
                    "recipient lookup timed out",
                    details={"email": email, "timeout_s": self._lookup_timeout_s},
                ) from None
            except SigningFailed as exc:
                raise RecipientNotFound(
                    f"no wallet found for {email}",
                    details={"email": email, **exc.details},
                ) from exc
        finally:
            self._lookup_in_flight = False

        if lookup.status != SIGNER_SUCCESS or not lookup.address:
            logger.info("No wallet bound to recipient email | status=%s", lookup.status)
            raise RecipientNotFound(
                f"no wallet found for {email}",
                details={"email": email, "status": lookup.status},
            )

        if not is_valid_address(lookup.address):
            logger.error("Signer returned a malformed address for a recipient email")
            raise ResolutionError(
                "resolved address is invalid",
                details={"email": email, "address": lookup.address},
            )
        return lookup.address.strip()
