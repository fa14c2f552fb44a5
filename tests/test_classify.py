"""
Tests for failure classification and user-facing outcomes.

Test plan:
- Exceptions: pipeline types map directly; foreign exceptions fall back
  to keyword matching over their text; anything else is NETWORK_ERROR.
- Signer statuses: denial statuses → USER_DENIED; outcome names pass through.
- Payloads: explicit code wins over text; keywords; HTTP 400 → INVALID_INPUT.
- describe(): gas outcome carries the faucet link.
"""

import pytest

from custody_send.classify import (
    KeywordAdapter,
    OutcomeKind,
    classify,
    describe,
    is_insufficient_gas,
)
from custody_send.errors import (
    BroadcastRejected,
    ConfigurationError,
    InsufficientGas,
    NetworkError,
    RecipientNotFound,
    SigningDenied,
    SigningFailed,
    ValidationError,
)
from custody_send.ledger.client import RpcError


class TestExceptions:
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (InsufficientGas("x"), OutcomeKind.INSUFFICIENT_GAS),
            (SigningDenied("x"), OutcomeKind.USER_DENIED),
            (ValidationError("invalid amount"), OutcomeKind.INVALID_INPUT),
            (RecipientNotFound("no wallet"), OutcomeKind.INVALID_INPUT),
            (ConfigurationError("no mint"), OutcomeKind.CONFIG_ERROR),
            (SigningFailed("bad response"), OutcomeKind.NETWORK_ERROR),
            (NetworkError("down"), OutcomeKind.NETWORK_ERROR),
        ],
    )
    def test_pipeline_types(self, exc: Exception, kind: OutcomeKind) -> None:
        assert classify(exc) is kind

    def test_rejection_text_with_funds_keyword(self) -> None:
        exc = BroadcastRejected("Transaction failed: insufficient funds for rent")
        assert classify(exc) is OutcomeKind.INSUFFICIENT_GAS

    def test_rpc_error_logs_are_read(self) -> None:
        exc = RpcError(-32002, "simulation failed", {"logs": ["Transfer: insufficient lamports"]})
        assert classify(exc) is OutcomeKind.INSUFFICIENT_GAS

    def test_foreign_exception_with_denial_text(self) -> None:
        assert classify(RuntimeError("User rejected the request")) is OutcomeKind.USER_DENIED

    def test_unknown_exception(self) -> None:
        assert classify(RuntimeError("socket closed")) is OutcomeKind.NETWORK_ERROR


class TestStatuses:
    @pytest.mark.parametrize("status", ["USER_REQUEST_DENIED", "USER_CONSENT_DENIED"])
    def test_denial_statuses(self, status: str) -> None:
        assert classify(status) is OutcomeKind.USER_DENIED

    def test_outcome_name_passes_through(self) -> None:
        assert classify("CONFIG_ERROR") is OutcomeKind.CONFIG_ERROR

    def test_free_text(self) -> None:
        assert classify("Not enough SOL to pay fees") is OutcomeKind.INSUFFICIENT_GAS
        assert classify("something odd") is OutcomeKind.NETWORK_ERROR


class TestPayloads:
    def test_code_wins_over_text(self) -> None:
        payload = {"error": "insufficient funds", "code": "CONFIG_ERROR"}
        assert classify(payload) is OutcomeKind.CONFIG_ERROR

    def test_keyword_in_message(self) -> None:
        payload = {"error": "Failed", "message": "insufficient funds for fee"}
        assert classify(payload) is OutcomeKind.INSUFFICIENT_GAS

    def test_bad_request_is_invalid_input(self) -> None:
        payload = {"error": "Missing required fields: from, to, amount", "status": 400}
        assert classify(payload) is OutcomeKind.INVALID_INPUT

    def test_server_error_without_code(self) -> None:
        payload = {"error": "Failed to create transfer transaction", "status": 500}
        assert classify(payload) is OutcomeKind.NETWORK_ERROR

    def test_unknown_signal_type(self) -> None:
        assert classify(42) is OutcomeKind.NETWORK_ERROR


class TestKeywordAdapter:
    def test_gas_checked_before_denial(self) -> None:
        text = "user denied: not enough lamports"
        assert KeywordAdapter().match(text) is OutcomeKind.INSUFFICIENT_GAS

    def test_custom_phrases(self) -> None:
        adapter = KeywordAdapter(insufficient_gas=("out of gas",), user_denied=())
        assert adapter.match("OUT OF GAS") is OutcomeKind.INSUFFICIENT_GAS
        assert adapter.match("user denied") is None

    def test_is_insufficient_gas(self) -> None:
        assert is_insufficient_gas("Attempt to debit an account but found no record of a prior credit.")
        assert not is_insufficient_gas("Blockhash not found")


class TestDescribe:
    def test_gas_has_faucet_link(self) -> None:
        outcome = describe(OutcomeKind.INSUFFICIENT_GAS)
        assert outcome.message == "Insufficient SOL for gas"
        assert outcome.action_label == "Get SOL"
        assert outcome.action_href == "https://faucet.solana.com/"

    def test_network_error_includes_detail(self) -> None:
        outcome = describe(OutcomeKind.NETWORK_ERROR, "node unreachable")
        assert outcome.message == "Send failed: node unreachable"
        assert outcome.action_href is None

    def test_network_error_without_detail(self) -> None:
        assert describe(OutcomeKind.NETWORK_ERROR).message == "Send failed: Unknown error"

    def test_invalid_input_default(self) -> None:
        outcome = describe(OutcomeKind.INVALID_INPUT)
        assert outcome.message == "Please enter a valid wallet address or email address"

    def test_denied(self) -> None:
        assert "denied" in describe(OutcomeKind.USER_DENIED).message
