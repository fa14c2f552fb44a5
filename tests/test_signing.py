"""
Tests for the signing round-trip.

The fake signer holds a real ed25519 key, so its signatures verify
against the payer exactly as the custodial signer's would.

Test plan:
- decode_signature: prefix-insensitive, exact 64-byte length, hex only.
- compose_reason: emails shown as typed, addresses truncated 6...4.
- sign(): SUCCESS binds the signature to the payer; denial statuses →
  SigningDenied; other statuses, missing or short signatures, signatures
  by another key → SigningFailed; the wait is bounded by the timeout.
"""

import asyncio

import pytest
from fakes import MINT, RECIPIENT, FakeLedger, FakeSigner, Keypair

from custody_send.builder import BuiltTransfer, TransferBuilder
from custody_send.errors import SigningDenied, SigningFailed
from custody_send.models import SignedTransaction
from custody_send.signer import (
    SIGNER_FAILED,
    USER_CONSENT_DENIED,
    USER_REQUEST_DENIED,
)
from custody_send.signing import (
    SigningCoordinator,
    compose_reason,
    decode_signature,
    truncate_address,
)


async def _built(sender: Keypair) -> BuiltTransfer:
    return await TransferBuilder(FakeLedger(), MINT).build(sender.address, str(RECIPIENT), "2.50")


class TestDecodeSignature:
    def test_prefix_insensitive(self) -> None:
        body = "ab" * 64
        assert decode_signature(body).raw_bytes == decode_signature("0x" + body).raw_bytes
        assert decode_signature("0X" + body).raw_bytes == bytes.fromhex(body)

    def test_short_signature_fails(self) -> None:
        with pytest.raises(SigningFailed, match="64 bytes"):
            decode_signature("0xabcd1234")

    def test_non_hex_fails(self) -> None:
        with pytest.raises(SigningFailed, match="not hex"):
            decode_signature("zz" * 64)

    def test_records_encoding_and_status(self) -> None:
        envelope = decode_signature("0x" + "01" * 64)
        assert envelope.encoding == "0x-hex"
        assert envelope.signer_status == "SUCCESS"
        assert decode_signature("01" * 64).encoding == "hex"


class TestComposeReason:
    def test_email_shown_as_typed(self) -> None:
        reason = compose_reason("2.50", "bob@example.com", str(RECIPIENT))
        assert reason == "Send 2.50 USDC to bob@example.com"

    def test_address_truncated(self) -> None:
        address = str(RECIPIENT)
        reason = compose_reason("1.00", address, address)
        assert reason == f"Send 1.00 USDC to {address[:6]}...{address[-4:]}"

    def test_truncate_address(self) -> None:
        assert truncate_address("7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU") == "7xKXtg...gAsU"


class TestSignSuccess:
    @pytest.mark.asyncio
    async def test_signature_bound_to_payer(self) -> None:
        sender = Keypair()
        signer = FakeSigner(keypair=sender)
        built = await _built(sender)

        signed = await SigningCoordinator(signer).sign(built.serialized_transaction, "reason")

        assert isinstance(signed, SignedTransaction)
        assert signed.signer == sender.address
        assert bytes(signed.transaction.signatures[0]) == signed.signature
        assert str(signed.transaction.signatures[0]) == signed.transaction_id
        assert signed.transaction.message.account_keys[0] == sender.pubkey

    @pytest.mark.asyncio
    async def test_unprefixed_signature_accepted(self) -> None:
        sender = Keypair()
        built = await _built(sender)
        signed = await SigningCoordinator(FakeSigner(keypair=sender, prefix="")).sign(
            built.serialized_transaction, "reason"
        )
        assert signed.signer == sender.address

    @pytest.mark.asyncio
    async def test_reason_forwarded(self) -> None:
        sender = Keypair()
        signer = FakeSigner(keypair=sender)
        built = await _built(sender)
        await SigningCoordinator(signer).sign(built.serialized_transaction, "Send 2.50 USDC to x")
        assert signer.sign_calls[0][1] == "Send 2.50 USDC to x"

    @pytest.mark.asyncio
    async def test_signed_bytes_preserve_message(self) -> None:
        sender = Keypair()
        built = await _built(sender)
        signed = await SigningCoordinator(FakeSigner(keypair=sender)).sign(
            built.serialized_transaction, "reason"
        )
        wire = signed.to_bytes()
        assert wire[65:] == built.unsigned.serialized_bytes[65:]


class TestSignFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [USER_REQUEST_DENIED, USER_CONSENT_DENIED])
    async def test_denial(self, status: str) -> None:
        sender = Keypair()
        built = await _built(sender)
        with pytest.raises(SigningDenied) as excinfo:
            await SigningCoordinator(FakeSigner(keypair=sender, sign_status=status)).sign(
                built.serialized_transaction, "reason"
            )
        assert excinfo.value.details["status"] == status

    @pytest.mark.asyncio
    async def test_failed_status(self) -> None:
        sender = Keypair()
        built = await _built(sender)
        with pytest.raises(SigningFailed, match=r"signing failed \(FAILED\)"):
            await SigningCoordinator(FakeSigner(keypair=sender, sign_status=SIGNER_FAILED)).sign(
                built.serialized_transaction, "reason"
            )

    @pytest.mark.asyncio
    async def test_wrong_length_signature(self) -> None:
        sender = Keypair()
        built = await _built(sender)
        signer = FakeSigner(keypair=sender, signature="0x" + "ab" * 32)
        with pytest.raises(SigningFailed, match="64 bytes"):
            await SigningCoordinator(signer).sign(built.serialized_transaction, "reason")

    @pytest.mark.asyncio
    async def test_signature_from_another_key(self) -> None:
        sender = Keypair()
        built = await _built(sender)
        impostor = FakeSigner(keypair=Keypair())
        with pytest.raises(SigningFailed, match="does not match the fee payer"):
            await SigningCoordinator(impostor).sign(built.serialized_transaction, "reason")

    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(self) -> None:
        sender = Keypair()
        built = await _built(sender)
        impostor = FakeSigner(keypair=Keypair())
        signed = await SigningCoordinator(impostor, verify=False).sign(
            built.serialized_transaction, "reason"
        )
        assert signed.signer == sender.address

    @pytest.mark.asyncio
    async def test_undecodable_transaction(self) -> None:
        with pytest.raises(SigningFailed, match="could not be decoded"):
            await SigningCoordinator(FakeSigner()).sign("%%%", "reason")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        sender = Keypair()
        built = await _built(sender)
        signer = FakeSigner(keypair=sender, hang=asyncio.Event())
        with pytest.raises(SigningFailed, match="timed out"):
            await SigningCoordinator(signer, timeout_s=0.01).sign(
                built.serialized_transaction, "reason"
            )
