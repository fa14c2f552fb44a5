"""
Transfer builder — unsigned, fee-payer-correct token transfers.

Composes the pure token primitives (ledger/token.py) with two ledger
reads (sub-account existence, latest blockhash) to produce a serialized
v0 transaction for the custodial signer.

Steps for ``build(from, to, amount)``:
    1. Parse both addresses.
    2. Parse the amount as a positive decimal.
    3. Convert to smallest units: floor(amount × 10^decimals). Zero
       units is rejected; it would be a no-op transfer.
    4. Derive sender and recipient sub-accounts under the mint.
    5. If the recipient sub-account does not exist, prepend a create
       instruction paid by the sender.
    6. Fetch the finalized blockhash; compile with the sender as payer.
    7. Serialize to base64 with "Transfer <amount> <symbol>".

Stateless: concurrent builds share nothing but the ledger client. Each
result embeds a blockhash with a short validity window, so results are
single-use; a stale transaction is rebuilt, never replayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

import httpx
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey

from custody_send.config import Settings
from custody_send.errors import NetworkError, ValidationError
from custody_send.ledger.client import FINALIZED, LedgerClient, RpcError
from custody_send.ledger.token import (
    U64_MAX,
    create_token_account_instruction,
    derive_token_account,
    transfer_instruction,
)
from custody_send.models import UnsignedTransactionMessage, parse_amount
from custody_send.resolver import parse_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuiltTransfer:
    """Result of build() — everything the signing step needs.

    Attributes:
        serialized_transaction: Base64 unsigned transaction.
        human_message: "Transfer <amount> <symbol>".
        unsigned: The decoded unsigned message.
        amount_units: Transfer amount in smallest units.
        creates_token_account: True if a create instruction was prepended.
        last_valid_block_height: Block height after which the blockhash
            expires. None when the builder is remote and does not report it.
    """

    serialized_transaction: str
    human_message: str
    unsigned: UnsignedTransactionMessage
    amount_units: int
    creates_token_account: bool
    last_valid_block_height: int | None


def to_smallest_units(amount: Decimal, decimals: int) -> int:
    """floor(amount × 10^decimals)."""
    scaled = amount.scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


class TransferBuilder:
    """Builds unsigned token transfers.

    Args:
        ledger: Ledger client for the two reads.
        mint: Token mint.
        decimals: Decimal places declared by the mint.
        symbol: Token symbol for the human-readable message.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        mint: Pubkey,
        *,
        decimals: int = 6,
        symbol: str = "USDC",
    ) -> None:
        self._ledger = ledger
        self._mint = mint
        self._decimals = decimals
        self._symbol = symbol

    @classmethod
    def from_settings(cls, settings: Settings, ledger: LedgerClient) -> TransferBuilder:
        """Raises ConfigurationError if the mint is missing or malformed."""
        return cls(
            ledger,
            settings.mint(),
            decimals=settings.token_decimals,
            symbol=settings.token_symbol,
        )

    async def build(self, from_address: str, to_address: str, amount: str) -> BuiltTransfer:
        """Build an unsigned transfer of ``amount`` tokens.

        Raises:
            ValidationError: Malformed address, bad amount, or an amount
                that floors to zero smallest units or overflows a u64.
            NetworkError: A ledger read failed.
        """
        # 1. Addresses
        sender = parse_address(from_address, field="sender")
        recipient = parse_address(to_address, field="recipient")

        # 2–3. Amount
        amount_text = str(amount).strip()
        value = parse_amount(amount_text)
        try:
            units = to_smallest_units(value, self._decimals)
        except ArithmeticError:
            raise ValidationError(
                "amount exceeds the maximum transferable amount",
                details={"amount": amount_text},
            ) from None
        if units > U64_MAX:
            raise ValidationError(
                "amount exceeds the maximum transferable amount",
                details={"amount": amount_text, "decimals": self._decimals},
            )
        if units <= 0:
            raise ValidationError(
                "amount is below the smallest transferable unit",
                details={"amount": amount_text, "decimals": self._decimals},
            )

        # 4. Sub-accounts
        source = derive_token_account(sender, self._mint)
        destination = derive_token_account(recipient, self._mint)

        # 5. Instructions
        try:
            destination_exists = await self._ledger.account_exists(str(destination))
        except (RpcError, httpx.HTTPError) as exc:
            raise NetworkError(
                "failed to check recipient token account",
                details={"account": str(destination), "error": str(exc)},
            ) from exc

        instructions = []
        if not destination_exists:
            instructions.append(
                create_token_account_instruction(sender, destination, recipient, self._mint)
            )
        instructions.append(transfer_instruction(source, destination, sender, units))

        # 6. Blockhash + compile
        try:
            latest = await self._ledger.get_latest_blockhash(FINALIZED)
        except (RpcError, httpx.HTTPError) as exc:
            raise NetworkError(
                "failed to fetch latest blockhash", details={"error": str(exc)}
            ) from exc

        message = MessageV0.try_compile(
            sender, instructions, [], Hash.from_string(latest.blockhash)
        )

        # 7. Serialize
        unsigned = UnsignedTransactionMessage.from_message(message)
        logger.info(
            "Built transfer | from=%s to=%s units=%d create_account=%s",
            sender,
            recipient,
            units,
            not destination_exists,
        )
        return BuiltTransfer(
            serialized_transaction=unsigned.to_base64(),
            human_message=f"Transfer {amount_text} {self._symbol}",
            unsigned=unsigned,
            amount_units=units,
            creates_token_account=not destination_exists,
            last_valid_block_height=latest.last_valid_block_height,
        )
