"""Tests for HttpCustodialSigner."""

from __future__ import annotations

import json

import httpx
import pytest
from fakes import MINT, RECIPIENT, FakeLedger, Keypair, sign_response_payload
from pytest_httpx import HTTPXMock
from solders.message import to_bytes_versioned
from solders.transaction import VersionedTransaction

from custody_send.builder import TransferBuilder
from custody_send.config import Settings
from custody_send.custodial_http import SIGN_PATH, WALLET_PATH, HttpCustodialSigner
from custody_send.errors import ConfigurationError, NetworkError, SigningFailed
from custody_send.signer import SIGNER_SUCCESS, USER_REQUEST_DENIED

BASE_URL = "https://signer.example.com"


def _signer(**kwargs) -> HttpCustodialSigner:
    return HttpCustodialSigner(base_url=BASE_URL + "/", app_id="app-123", **kwargs)


async def _unsigned_tx(sender: Keypair) -> VersionedTransaction:
    built = await TransferBuilder(FakeLedger(), MINT).build(sender.address, str(RECIPIENT), "1")
    return VersionedTransaction.from_bytes(built.unsigned.serialized_bytes)


class TestGetWallet:
    """Test HttpCustodialSigner.get_wallet()."""

    @pytest.mark.asyncio
    async def test_lookup_by_email(self, httpx_mock: HTTPXMock) -> None:
        """Email lookups send appId and user.email."""
        httpx_mock.add_response(
            method="POST",
            url=BASE_URL + WALLET_PATH,
            json={"status": "SUCCESS", "wallet": {"solAddress": str(RECIPIENT)}},
        )

        lookup = await _signer().get_wallet("bob@example.com")

        assert lookup.status == SIGNER_SUCCESS
        assert lookup.address == str(RECIPIENT)
        body = json.loads(httpx_mock.get_requests()[0].content)
        assert body == {"appId": "app-123", "user": {"email": "bob@example.com"}}

    @pytest.mark.asyncio
    async def test_own_wallet_uses_bound_user(self, httpx_mock: HTTPXMock) -> None:
        """Without an email argument, the signed-in user is looked up."""
        httpx_mock.add_response(
            method="POST",
            url=BASE_URL + WALLET_PATH,
            json={
                "status": "SUCCESS",
                "wallet": {"solAddress": str(RECIPIENT)},
                "user": {"email": "alice@example.com"},
            },
        )

        signer = _signer()
        signer.bind_user("alice@example.com")
        lookup = await signer.get_wallet()

        assert lookup.email == "alice@example.com"
        body = json.loads(httpx_mock.get_requests()[0].content)
        assert body["user"] == {"email": "alice@example.com"}

    @pytest.mark.asyncio
    async def test_headers(self, httpx_mock: HTTPXMock) -> None:
        """App id and API key travel as headers."""
        httpx_mock.add_response(method="POST", json={"status": "FAILED"})

        await _signer(api_key="secret").get_wallet("bob@example.com")

        request = httpx_mock.get_requests()[0]
        assert request.headers["x-app-id"] == "app-123"
        assert request.headers["x-api-key"] == "secret"
        assert request.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_no_api_key_header_by_default(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", json={"status": "FAILED"})
        await _signer().get_wallet("bob@example.com")
        assert "x-api-key" not in httpx_mock.get_requests()[0].headers

    @pytest.mark.asyncio
    async def test_malformed_body(self, httpx_mock: HTTPXMock) -> None:
        """A body without status fails schema validation."""
        httpx_mock.add_response(method="POST", json={"wallet": {}})
        with pytest.raises(SigningFailed, match="malformed wallet response"):
            await _signer().get_wallet("bob@example.com")


class TestSignTransaction:
    """Test HttpCustodialSigner.sign_transaction()."""

    @pytest.mark.asyncio
    async def test_sends_versioned_message_hex(self, httpx_mock: HTTPXMock) -> None:
        """The message is sent 0x-hex encoded alongside the reason."""
        sender = Keypair()
        tx = await _unsigned_tx(sender)
        httpx_mock.add_response(
            method="POST",
            url=BASE_URL + SIGN_PATH,
            json=sign_response_payload(sender, tx),
        )

        signer = _signer(user_email="alice@example.com")
        response = await signer.sign_transaction(tx, "Send 1 USDC to bob@example.com")

        assert response.status == SIGNER_SUCCESS
        assert response.signature is not None and response.signature.startswith("0x")
        body = json.loads(httpx_mock.get_requests()[0].content)
        assert body["appId"] == "app-123"
        assert body["reason"] == "Send 1 USDC to bob@example.com"
        assert body["user"] == {"email": "alice@example.com"}
        assert body["transactionObject"]["serializedTransactionMessage"] == (
            "0x" + to_bytes_versioned(tx.message).hex()
        )

    @pytest.mark.asyncio
    async def test_denial_on_error_status(self, httpx_mock: HTTPXMock) -> None:
        """A 4xx that still carries a status is returned, not raised."""
        tx = await _unsigned_tx(Keypair())
        httpx_mock.add_response(
            method="POST", status_code=403, json={"status": USER_REQUEST_DENIED}
        )

        response = await _signer().sign_transaction(tx, "reason")

        assert response.status == USER_REQUEST_DENIED
        assert response.signature is None


class TestTransportErrors:
    """Test error mapping in HttpCustodialSigner._post()."""

    @pytest.mark.asyncio
    async def test_http_error_without_status(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", status_code=500, json={"error": "boom"})
        with pytest.raises(SigningFailed) as exc_info:
            await _signer().get_wallet("bob@example.com")
        assert "HTTP 500" in exc_info.value.message
        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_connection_error(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        with pytest.raises(NetworkError, match="failed to connect"):
            await _signer().get_wallet("bob@example.com")

    @pytest.mark.asyncio
    async def test_timeout(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ReadTimeout("Read timed out"))
        with pytest.raises(NetworkError, match="timed out") as exc_info:
            await _signer(timeout_s=5.0).get_wallet("bob@example.com")
        assert exc_info.value.details["timeout_s"] == 5.0

    @pytest.mark.asyncio
    async def test_invalid_json(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", text="<html>bad gateway</html>")
        with pytest.raises(SigningFailed, match="not valid JSON") as exc_info:
            await _signer().get_wallet("bob@example.com")
        assert exc_info.value.details["body_preview"].startswith("<html>")

    @pytest.mark.asyncio
    async def test_json_not_object(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(method="POST", json=["SUCCESS"])
        with pytest.raises(SigningFailed, match="not an object"):
            await _signer().get_wallet("bob@example.com")


class TestFromSettings:
    """Test HttpCustodialSigner.from_settings()."""

    def test_reads_signer_settings(self) -> None:
        settings = Settings(
            signer_app_id="app-123",
            signer_api_url=BASE_URL + "/",
            signer_api_key="secret",
            sign_timeout_s=42.0,
        )

        signer = HttpCustodialSigner.from_settings(settings, user_email="alice@example.com")

        assert signer._base_url == BASE_URL
        assert signer._app_id == "app-123"
        assert signer._api_key == "secret"
        assert signer._user_email == "alice@example.com"
        assert signer._timeout_s == 42.0

    def test_missing_app_id(self) -> None:
        with pytest.raises(ConfigurationError) as excinfo:
            HttpCustodialSigner.from_settings(Settings(signer_app_id=""))
        assert excinfo.value.details["setting"] == "SIGNER_APP_ID"
