"""
Signing coordinator — round-trips a transaction through the custodial
signer and splices the detached signature back in.

Flow for ``sign(serialized_transaction, reason)``:
    1. Deserialize the base64 transaction.
    2. The reason string (see ``compose_reason``) is shown to the user.
    3. Ask the signer to sign; the wait is bounded by ``timeout_s``.
    4. SUCCESS proceeds; USER_REQUEST_DENIED / USER_CONSENT_DENIED raise
       SigningDenied; anything else, or SUCCESS without a signature,
       raises SigningFailed.
    5. Decode the hex signature (optional "0x" prefix) and check it is
       exactly 64 bytes.
    6. Verify it against the payer key over the versioned message bytes,
       then bind it into the payer's signature slot.
"""

from __future__ import annotations

import asyncio
import binascii
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from custody_send.errors import SigningDenied, SigningFailed
from custody_send.models import (
    SIGNATURE_LENGTH,
    SignatureEnvelope,
    SignedTransaction,
    UnsignedTransactionMessage,
)
from custody_send.resolver import IdentifierKind, classify_identifier
from custody_send.signer import DENIAL_STATUSES, SIGNER_SUCCESS, CustodialSigner

logger = logging.getLogger(__name__)


def truncate_address(address: str) -> str:
    """First 6 and last 4 characters, e.g. "7xKXtg...sgAs"."""
    return f"{address[:6]}...{address[-4:]}"


def compose_reason(amount: str, identifier: str, address: str, symbol: str = "USDC") -> str:
    """Approval prompt text naming the amount and the recipient.

    Emails are shown as typed; addresses are truncated.
    """
    if classify_identifier(identifier) is IdentifierKind.EMAIL:
        recipient = identifier.strip()
    else:
        recipient = truncate_address(address)
    return f"Send {amount} {symbol} to {recipient}"


def decode_signature(value: str, status: str = SIGNER_SUCCESS) -> SignatureEnvelope:
    """Decode a hex signature, with or without a "0x" prefix.

    Raises:
        SigningFailed: If the value is not hex or not 64 bytes long.
    """
    text = value.strip()
    encoding = "hex"
    if text[:2] in ("0x", "0X"):
        text = text[2:]
        encoding = "0x-hex"
    try:
        raw = binascii.unhexlify(text)
    except (binascii.Error, ValueError):
        raise SigningFailed(
            "signer returned a signature that is not hex",
            details={"length": len(value)},
        ) from None
    if len(raw) != SIGNATURE_LENGTH:
        raise SigningFailed(
            f"signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}",
            details={"length": len(raw)},
        )
    return SignatureEnvelope(encoding=encoding, raw_bytes=raw, signer_status=status)


def verify_signature(signer: Pubkey, message: bytes, signature: bytes) -> bool:
    """ed25519 verification of a detached signature."""
    public_key = Ed25519PublicKey.from_public_bytes(bytes(signer))
    try:
        public_key.verify(signature, message)
    except InvalidSignature:
        return False
    return True


class SigningCoordinator:
    """Client-side signing round-trip.

    Args:
        signer: The custodial signer.
        timeout_s: Upper bound on the approval wait. None waits
            indefinitely.
        verify: Verify the detached signature before binding it.
    """

    def __init__(
        self,
        signer: CustodialSigner,
        *,
        timeout_s: float | None = 300.0,
        verify: bool = True,
    ) -> None:
        self._signer = signer
        self._timeout_s = timeout_s
        self._verify = verify

    async def sign(self, serialized_transaction: str, reason: str) -> SignedTransaction:
        """Sign a base64 unsigned transaction via the custodial signer.

        Raises:
            SigningDenied: The user declined.
            SigningFailed: Malformed transaction, timeout, failed status,
                missing/malformed signature, or a signature that does not
                verify against the payer.
        """
        # 1. Deserialize
        try:
            unsigned = UnsignedTransactionMessage.from_base64(serialized_transaction)
        except ValueError as exc:
            raise SigningFailed(
                "transaction could not be decoded", details={"error": str(exc)}
            ) from exc

        # 2–3. Ask the signer
        transaction = VersionedTransaction.from_bytes(unsigned.serialized_bytes)
        try:
            response = await asyncio.wait_for(
                self._signer.sign_transaction(transaction, reason),
                timeout=self._timeout_s,
            )
        except TimeoutError:
            logger.warning("Signing request timed out | timeout_s=%s", self._timeout_s)
            raise SigningFailed(
                "signing request timed out", details={"timeout_s": self._timeout_s}
            ) from None

        # 4. Status
        status = response.status
        if status in DENIAL_STATUSES:
            logger.info("User denied signing | status=%s", status)
            raise SigningDenied("user denied transaction signing", details={"status": status})
        if status != SIGNER_SUCCESS:
            logger.warning("Signing failed | status=%s", status)
            raise SigningFailed(
                f"transaction signing failed ({status})", details={"status": status}
            )
        if not response.signature:
            raise SigningFailed(
                "signer did not return a transaction signature", details={"status": status}
            )

        # 5. Decode
        envelope = decode_signature(response.signature, status)

        # 6. Verify + bind
        payer = unsigned.message.account_keys[0]
        if self._verify and not verify_signature(
            payer, unsigned.message_bytes(), envelope.raw_bytes
        ):
            logger.warning("Signature does not verify against payer | payer=%s", payer)
            raise SigningFailed(
                "signature does not match the fee payer", details={"payer": str(payer)}
            )
        try:
            signed = SignedTransaction(
                unsigned=unsigned, signature=envelope.raw_bytes, signer=str(payer)
            )
        except ValueError as exc:
            raise SigningFailed(str(exc), details={"payer": str(payer)}) from exc

        logger.info("Transaction signed | id=%s", signed.transaction_id)
        return signed
