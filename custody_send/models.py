"""
Data model for the transfer pipeline.

All records are frozen dataclasses validated in ``__post_init__``.
Ledger-native structures (messages, signatures) are held as solders
objects; the dataclasses add the invariants the pipeline relies on.

Invariants:
    - BalanceSnapshot balances are non-negative; native is 9 dp, token 6 dp.
    - TransferIntent.amount parses to a positive, finite decimal.
    - SignatureEnvelope.raw_bytes is exactly SIGNATURE_LENGTH bytes.
    - SignedTransaction fills exactly one signature slot, the payer's.
    - Timestamps are RFC3339 UTC.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from solders.message import MessageV0, to_bytes_versioned
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from custody_send.errors import ValidationError

# ed25519 detached signature size.
SIGNATURE_LENGTH = 64

NATIVE_DECIMALS = 9
TOKEN_DECIMALS = 6

_NATIVE_QUANTUM = Decimal(1).scaleb(-NATIVE_DECIMALS)
_TOKEN_QUANTUM = Decimal(1).scaleb(-TOKEN_DECIMALS)


def now_utc() -> str:
    """RFC3339 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


def parse_amount(value: str) -> Decimal:
    """Parse a user-entered amount into a positive, finite Decimal.

    Raises:
        ValidationError: If the value is empty, non-numeric, non-finite,
            zero or negative.
    """
    text = str(value).strip()
    if not text:
        raise ValidationError("invalid amount", details={"amount": value})
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError("invalid amount", details={"amount": value}) from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("invalid amount", details={"amount": value})
    return amount


# =========================================================================
# Client session state
# =========================================================================


@dataclass(frozen=True)
class WalletSession:
    """The connected custodial wallet for this process."""

    address: str
    bound_email: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.address:
            raise ValueError("address must be non-empty")
        if not self.created_at:
            object.__setattr__(self, "created_at", now_utc())

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "bound_email": self.bound_email,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletSession:
        return cls(
            address=data["address"],
            bound_email=data.get("bound_email"),
            created_at=data.get("created_at", ""),
        )


@dataclass(frozen=True)
class BalanceSnapshot:
    """Advisory balances for one address.

    A missing token sub-account is represented as ``token_balance == 0``.
    """

    address: str
    native_balance: Decimal
    token_balance: Decimal
    fetched_at: str = ""

    def __post_init__(self) -> None:
        native = Decimal(self.native_balance)
        token = Decimal(self.token_balance)
        if native < 0 or token < 0:
            raise ValueError(
                f"balances must be non-negative, got native={native} token={token}"
            )
        object.__setattr__(self, "native_balance", native.quantize(_NATIVE_QUANTUM))
        object.__setattr__(self, "token_balance", token.quantize(_TOKEN_QUANTUM))
        if not self.fetched_at:
            object.__setattr__(self, "fetched_at", now_utc())

    @classmethod
    def zero(cls, address: str) -> BalanceSnapshot:
        return cls(address=address, native_balance=Decimal(0), token_balance=Decimal(0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "native_balance": str(self.native_balance),
            "token_balance": str(self.token_balance),
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BalanceSnapshot:
        return cls(
            address=data["address"],
            native_balance=Decimal(data["native_balance"]),
            token_balance=Decimal(data["token_balance"]),
            fetched_at=data.get("fetched_at", ""),
        )


# =========================================================================
# Transfer records
# =========================================================================


@dataclass(frozen=True)
class TransferIntent:
    """One send attempt, as entered by the user and resolved."""

    from_address: str
    to_identifier: str
    resolved_to_address: str
    amount: str

    def __post_init__(self) -> None:
        parse_amount(self.amount)

    @property
    def amount_decimal(self) -> Decimal:
        return parse_amount(self.amount)


@dataclass(frozen=True)
class UnsignedTransactionMessage:
    """A compiled v0 message wrapped in an unsigned transaction.

    ``serialized_bytes`` is the wire form of the transaction with every
    signature slot zeroed. The recent blockhash expires within a bounded
    window, so instances are single-use.
    """

    message: MessageV0
    serialized_bytes: bytes

    @property
    def payer(self) -> str:
        return str(self.message.account_keys[0])

    @property
    def recent_blockhash(self) -> str:
        return str(self.message.recent_blockhash)

    @property
    def instructions(self) -> tuple[Any, ...]:
        return tuple(self.message.instructions)

    @property
    def num_required_signatures(self) -> int:
        return self.message.header.num_required_signatures

    def message_bytes(self) -> bytes:
        """The bytes a signer signs (version-prefixed message)."""
        return to_bytes_versioned(self.message)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialized_bytes).decode("ascii")

    @classmethod
    def from_message(cls, message: MessageV0) -> UnsignedTransactionMessage:
        required = message.header.num_required_signatures
        tx = VersionedTransaction.populate(
            message, [Signature.default() for _ in range(required)]
        )
        return cls(message=message, serialized_bytes=bytes(tx))

    @classmethod
    def from_base64(cls, data: str) -> UnsignedTransactionMessage:
        """Deserialize a base64 transaction produced by the builder.

        Raises:
            ValueError: If the data is not base64 or not a v0 transaction.
        """
        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"transaction is not valid base64: {exc}") from exc
        tx = VersionedTransaction.from_bytes(raw)
        message = tx.message
        if not isinstance(message, MessageV0):
            raise ValueError("transaction is not a v0 message")
        return cls(message=message, serialized_bytes=raw)


@dataclass(frozen=True)
class SignatureEnvelope:
    """A detached signature as returned by the custodial signer."""

    encoding: str
    raw_bytes: bytes
    signer_status: str

    def __post_init__(self) -> None:
        if len(self.raw_bytes) != SIGNATURE_LENGTH:
            raise ValueError(
                f"signature must be {SIGNATURE_LENGTH} bytes, got {len(self.raw_bytes)}"
            )


@dataclass(frozen=True)
class SignedTransaction:
    """An unsigned message with the payer's signature slot filled."""

    unsigned: UnsignedTransactionMessage
    signature: bytes
    signer: str

    def __post_init__(self) -> None:
        if len(self.signature) != SIGNATURE_LENGTH:
            raise ValueError(
                f"signature must be {SIGNATURE_LENGTH} bytes, got {len(self.signature)}"
            )
        if self.signature == bytes(SIGNATURE_LENGTH):
            raise ValueError("signature slot is empty")
        if self.unsigned.num_required_signatures != 1:
            raise ValueError(
                "single-signer transfers require exactly one signature, "
                f"message wants {self.unsigned.num_required_signatures}"
            )
        if self.signer != self.unsigned.payer:
            raise ValueError(
                f"signature bound to {self.signer}, payer is {self.unsigned.payer}"
            )

    @property
    def transaction(self) -> VersionedTransaction:
        return VersionedTransaction.populate(
            self.unsigned.message, [Signature.from_bytes(self.signature)]
        )

    @property
    def transaction_id(self) -> str:
        """Base58 of the payer signature; the network's transaction id."""
        return str(Signature.from_bytes(self.signature))

    def to_bytes(self) -> bytes:
        return bytes(self.transaction)


@dataclass(frozen=True)
class BroadcastReceipt:
    """Terminal artifact of a confirmed transfer. Never resubmitted."""

    transaction_id: str
    confirmed_at: str
    confirmation_status: str = "confirmed"
    slot: int | None = None

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise ValueError("transaction_id must be non-empty")
