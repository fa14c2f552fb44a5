"""
Tests for the pure SPL token primitives.

Test plan:
- Sub-account derivation: deterministic, owner- and mint-specific, off-curve.
- Create instruction: associated token program, payer signs, empty data.
- Transfer instruction: tag 3 + little-endian u64, owner signs, bounds.
"""

import struct

import pytest
from fakes import MINT, RECIPIENT, Keypair

from custody_send.ledger.token import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    create_token_account_instruction,
    decode_transfer_amount,
    derive_token_account,
    transfer_instruction,
)


class TestDeriveTokenAccount:
    def test_deterministic(self) -> None:
        assert derive_token_account(RECIPIENT, MINT) == derive_token_account(RECIPIENT, MINT)

    def test_differs_per_owner(self) -> None:
        other = Keypair().pubkey
        assert derive_token_account(RECIPIENT, MINT) != derive_token_account(other, MINT)

    def test_differs_per_mint(self) -> None:
        other_mint = Keypair().pubkey
        assert derive_token_account(RECIPIENT, MINT) != derive_token_account(RECIPIENT, other_mint)

    def test_address_is_off_curve(self) -> None:
        assert not derive_token_account(RECIPIENT, MINT).is_on_curve()


class TestCreateTokenAccountInstruction:
    def test_layout(self) -> None:
        payer = Keypair().pubkey
        ata = derive_token_account(RECIPIENT, MINT)
        ix = create_token_account_instruction(payer, ata, RECIPIENT, MINT)

        assert ix.program_id == ASSOCIATED_TOKEN_PROGRAM_ID
        assert bytes(ix.data) == b""
        keys = [meta.pubkey for meta in ix.accounts]
        assert keys == [payer, ata, RECIPIENT, MINT, SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID]

    def test_only_payer_signs(self) -> None:
        payer = Keypair().pubkey
        ata = derive_token_account(RECIPIENT, MINT)
        ix = create_token_account_instruction(payer, ata, RECIPIENT, MINT)
        signers = [meta.pubkey for meta in ix.accounts if meta.is_signer]
        assert signers == [payer]


class TestTransferInstruction:
    def test_data_layout(self) -> None:
        owner = Keypair().pubkey
        ix = transfer_instruction(
            derive_token_account(owner, MINT), derive_token_account(RECIPIENT, MINT), owner, 2_500_000
        )
        assert ix.program_id == TOKEN_PROGRAM_ID
        assert bytes(ix.data) == struct.pack("<BQ", 3, 2_500_000)
        assert decode_transfer_amount(bytes(ix.data)) == 2_500_000

    def test_owner_is_the_signer(self) -> None:
        owner = Keypair().pubkey
        source = derive_token_account(owner, MINT)
        destination = derive_token_account(RECIPIENT, MINT)
        ix = transfer_instruction(source, destination, owner, 1)

        assert [meta.pubkey for meta in ix.accounts] == [source, destination, owner]
        assert [meta.is_signer for meta in ix.accounts] == [False, False, True]
        assert [meta.is_writable for meta in ix.accounts] == [True, True, False]

    @pytest.mark.parametrize("amount", [0, -1, 2**64])
    def test_out_of_range_amount(self, amount: int) -> None:
        owner = Keypair().pubkey
        with pytest.raises(ValueError, match="positive u64"):
            transfer_instruction(owner, owner, owner, amount)

    def test_decode_rejects_other_instructions(self) -> None:
        with pytest.raises(ValueError):
            decode_transfer_amount(b"")
        with pytest.raises(ValueError):
            decode_transfer_amount(struct.pack("<BQ", 12, 5))
