"""
SPL token primitives: program ids, sub-account derivation, instructions.

Pure and deterministic — no network, no secrets. The associated token
account ("sub-account") of an owner for a mint is a program-derived
address over (owner, token program, mint); it may not exist on-ledger
yet, in which case the payer must create it before transferring.
"""

from __future__ import annotations

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")

LAMPORTS_PER_SOL = 1_000_000_000

# SPL token instruction tag for Transfer.
_TRANSFER_TAG = 3
U64_MAX = 2**64 - 1


def derive_token_account(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Associated token account address for ``owner`` under ``mint``."""
    address, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def create_token_account_instruction(
    payer: Pubkey,
    token_account: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
) -> Instruction:
    """Create ``owner``'s associated token account, rent paid by ``payer``."""
    accounts = [
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(token_account, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=False, is_writable=False),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, b"", accounts)


def transfer_instruction(
    source: Pubkey,
    destination: Pubkey,
    owner: Pubkey,
    amount: int,
) -> Instruction:
    """SPL ``Transfer`` of ``amount`` smallest units from source to destination.

    Raises:
        ValueError: If amount is not a positive u64.
    """
    if amount <= 0 or amount > U64_MAX:
        raise ValueError(f"amount must be a positive u64, got {amount}")
    accounts = [
        AccountMeta(source, is_signer=False, is_writable=True),
        AccountMeta(destination, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=True, is_writable=False),
    ]
    return Instruction(TOKEN_PROGRAM_ID, struct.pack("<BQ", _TRANSFER_TAG, amount), accounts)


def decode_transfer_amount(data: bytes) -> int:
    """Inverse of the Transfer data layout. Raises ValueError on other data."""
    if len(data) != 9 or data[0] != _TRANSFER_TAG:
        raise ValueError("not an SPL Transfer instruction")
    (amount,) = struct.unpack("<Q", data[1:])
    return amount
