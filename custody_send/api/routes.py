"""Transfer construction and balance routes.

Endpoints:
    POST /api/token-transfer   unsigned transfer for the custodial signer
    GET  /api/balances         native and token balances of an address
    POST /api/claim            token faucet (disabled)
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from custody_send.balances import fetch_balances
from custody_send.builder import TransferBuilder
from custody_send.classify import OutcomeKind, classify
from custody_send.config import Settings, get_settings
from custody_send.errors import NetworkError, ValidationError
from custody_send.ledger import HttpxTransport, LedgerClient, RpcError, SolanaRpcClient
from custody_send.resolver import parse_address

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["transfers"])


# =============================================================================
# Request/Response Models
# =============================================================================


class TransferRequest(BaseModel):
    """Body of a transfer construction request. Every field is checked by hand
    so a missing one yields the documented 400 body."""

    from_address: str | None = Field(None, alias="from")
    to: str | None = None
    amount: str | int | float | None = None


class TransferResponse(BaseModel):
    transaction: str
    message: str


class BalancesResponse(BaseModel):
    solBalance: float
    usdcBalance: float


# =============================================================================
# Dependencies
# =============================================================================


@lru_cache
def _ledger_for(url: str, timeout_s: float) -> SolanaRpcClient:
    return SolanaRpcClient(url, transport=HttpxTransport(timeout=timeout_s))


def get_ledger(settings: Annotated[Settings, Depends(get_settings)]) -> LedgerClient:
    """Ledger client for the configured RPC endpoint."""
    return _ledger_for(settings.solana_rpc_url, settings.rpc_timeout_s)


def get_builder(
    settings: Annotated[Settings, Depends(get_settings)],
    ledger: Annotated[LedgerClient, Depends(get_ledger)],
) -> TransferBuilder:
    """Raises ConfigurationError if the mint is missing or malformed."""
    return TransferBuilder.from_settings(settings, ledger)


def _rounded(value: Decimal, places: int) -> float:
    return float(value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


# =============================================================================
# Routes
# =============================================================================


@router.post("/token-transfer", response_model=TransferResponse)
async def create_token_transfer(
    body: TransferRequest,
    builder: Annotated[TransferBuilder, Depends(get_builder)],
):
    """Build an unsigned token transfer for the sender to sign."""
    if not body.from_address or not body.to or body.amount in (None, ""):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Missing required fields: from, to, amount",
                "code": OutcomeKind.INVALID_INPUT,
            },
        )

    try:
        built = await builder.build(body.from_address, body.to, str(body.amount))
    except NetworkError as exc:
        logger.error("Failed to create transfer transaction: %s", exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Failed to create transfer transaction",
                "message": exc.message,
                "code": classify(exc),
            },
        )

    return TransferResponse(
        transaction=built.serialized_transaction,
        message=built.human_message,
    )


@router.get("/balances", response_model=BalancesResponse)
async def get_balances(
    settings: Annotated[Settings, Depends(get_settings)],
    ledger: Annotated[LedgerClient, Depends(get_ledger)],
    address: Annotated[str | None, Query()] = None,
):
    """Balances rounded for display: native to 3 dp, token to 2 dp."""
    if not address:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing wallet address", "code": OutcomeKind.INVALID_INPUT},
        )
    try:
        parse_address(address)
    except ValidationError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid Solana address", "code": OutcomeKind.INVALID_INPUT},
        )

    mint = settings.mint()
    try:
        snapshot = await fetch_balances(ledger, address, mint, settings.token_decimals)
    except (RpcError, httpx.HTTPError) as exc:
        logger.error("Failed to fetch balances | address=%s error=%s", address, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Failed to fetch balances",
                "message": str(exc),
                "code": classify(exc),
            },
        )

    return BalancesResponse(
        solBalance=_rounded(snapshot.native_balance, 3),
        usdcBalance=_rounded(snapshot.token_balance, 2),
    )


@router.post("/claim", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
async def claim(settings: Annotated[Settings, Depends(get_settings)]):
    """The token faucet is disabled; point users at the public one."""
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ok": False,
            "error": f"Faucet disabled. Get devnet {settings.token_symbol} at "
            f"{settings.token_faucet_url}",
        },
    )
