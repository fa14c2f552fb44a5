"""
Error classification — heterogeneous failure signals → outcome kinds.

``classify(signal)`` accepts:
    - an exception raised anywhere in the pipeline,
    - a custodial signer status string ("USER_REQUEST_DENIED", ...),
    - an HTTP error payload dict ({"error", "message", "code"?, "status"?}).

Structured information answers first: our exception types, signer
statuses, an explicit "code" on a payload, an HTTP status. Free text only
reaches the KeywordAdapter when nothing structured applies. Anything
still unmatched is NETWORK_ERROR.

Pure: no I/O, no logging.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from custody_send.errors import (
    ConfigurationError,
    InsufficientGas,
    SigningDenied,
    ValidationError,
)
from custody_send.signer import DENIAL_STATUSES


class OutcomeKind(StrEnum):
    INSUFFICIENT_GAS = "INSUFFICIENT_GAS"
    USER_DENIED = "USER_DENIED"
    INVALID_INPUT = "INVALID_INPUT"
    CONFIG_ERROR = "CONFIG_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


INSUFFICIENT_GAS_KEYWORDS: tuple[str, ...] = (
    "insufficient funds",
    "insufficient balance",
    "insufficient lamports",
    "insufficient sol",
    "not enough",
    "attempt to debit an account but found no record of a prior credit",
)

USER_DENIED_KEYWORDS: tuple[str, ...] = (
    "user rejected",
    "user denied",
    "request denied",
    "consent denied",
)

# Checked in order; the first exception type that matches wins.
_EXCEPTION_KINDS: tuple[tuple[type[BaseException], OutcomeKind], ...] = (
    (InsufficientGas, OutcomeKind.INSUFFICIENT_GAS),
    (SigningDenied, OutcomeKind.USER_DENIED),
    (ValidationError, OutcomeKind.INVALID_INPUT),
    (ConfigurationError, OutcomeKind.CONFIG_ERROR),
)


class KeywordAdapter:
    """Case-insensitive phrase matching over free-text error messages.

    The only place keyword heuristics live. Callers hand it text when no
    structured code is available.
    """

    def __init__(
        self,
        insufficient_gas: tuple[str, ...] = INSUFFICIENT_GAS_KEYWORDS,
        user_denied: tuple[str, ...] = USER_DENIED_KEYWORDS,
    ) -> None:
        self._rules = (
            (OutcomeKind.INSUFFICIENT_GAS, tuple(k.lower() for k in insufficient_gas)),
            (OutcomeKind.USER_DENIED, tuple(k.lower() for k in user_denied)),
        )

    def match(self, text: str) -> OutcomeKind | None:
        lowered = text.lower()
        for kind, keywords in self._rules:
            if any(keyword in lowered for keyword in keywords):
                return kind
        return None


_DEFAULT_ADAPTER = KeywordAdapter()


def is_insufficient_gas(text: str) -> bool:
    """True if ``text`` reads as a lack of fee funds."""
    return _DEFAULT_ADAPTER.match(text) is OutcomeKind.INSUFFICIENT_GAS


def _classify_exception(exc: BaseException, adapter: KeywordAdapter) -> OutcomeKind:
    for exc_type, kind in _EXCEPTION_KINDS:
        if isinstance(exc, exc_type):
            return kind
    describe = getattr(exc, "describe", None)
    text = describe() if callable(describe) else str(exc)
    return adapter.match(text) or OutcomeKind.NETWORK_ERROR


def _classify_status(status: str, adapter: KeywordAdapter) -> OutcomeKind:
    if status in DENIAL_STATUSES:
        return OutcomeKind.USER_DENIED
    if status in OutcomeKind.__members__:
        return OutcomeKind(status)
    return adapter.match(status) or OutcomeKind.NETWORK_ERROR


def _classify_payload(payload: Mapping[str, Any], adapter: KeywordAdapter) -> OutcomeKind:
    code = payload.get("code")
    if isinstance(code, str) and code in OutcomeKind.__members__:
        return OutcomeKind(code)

    status = payload.get("status")
    if isinstance(status, str) and status in DENIAL_STATUSES:
        return OutcomeKind.USER_DENIED

    text = " ".join(
        str(payload[key]) for key in ("error", "message") if payload.get(key)
    )
    matched = adapter.match(text)
    if matched is not None:
        return matched

    if status == 400:
        return OutcomeKind.INVALID_INPUT
    return OutcomeKind.NETWORK_ERROR


def classify(signal: Any, adapter: KeywordAdapter | None = None) -> OutcomeKind:
    """Map a failure signal onto the outcome taxonomy.

    Args:
        signal: An exception, a signer status / free-text message, or an
            HTTP error payload dict.
        adapter: Keyword adapter for free text. Defaults to the built-in
            phrase lists.
    """
    adapter = adapter or _DEFAULT_ADAPTER
    if isinstance(signal, BaseException):
        return _classify_exception(signal, adapter)
    if isinstance(signal, str):
        return _classify_status(signal.strip(), adapter)
    if isinstance(signal, Mapping):
        return _classify_payload(signal, adapter)
    return OutcomeKind.NETWORK_ERROR


# =========================================================================
# User-facing outcomes
# =========================================================================


@dataclass(frozen=True)
class Outcome:
    """What the UI shows for a classified failure.

    ``action_label``/``action_href`` carry a remediation link when one
    exists (the gas faucet for INSUFFICIENT_GAS).
    """

    kind: OutcomeKind
    message: str
    action_label: str | None = None
    action_href: str | None = None


def describe(
    kind: OutcomeKind,
    detail: str | None = None,
    *,
    gas_faucet_url: str = "https://faucet.solana.com/",
) -> Outcome:
    """User-visible text for ``kind``. ``detail`` is the underlying message."""
    if kind is OutcomeKind.INSUFFICIENT_GAS:
        return Outcome(
            kind=kind,
            message="Insufficient SOL for gas",
            action_label="Get SOL",
            action_href=gas_faucet_url,
        )
    if kind is OutcomeKind.USER_DENIED:
        return Outcome(kind=kind, message="Send cancelled: user denied transaction signing")
    if kind is OutcomeKind.INVALID_INPUT:
        return Outcome(
            kind=kind,
            message=detail or "Please enter a valid wallet address or email address",
        )
    if kind is OutcomeKind.CONFIG_ERROR:
        return Outcome(kind=kind, message="Service is not configured. Please contact support.")
    return Outcome(kind=kind, message=f"Send failed: {detail or 'Unknown error'}")
