"""
Error taxonomy for the custodial transfer pipeline.

Every failure raised by a pipeline component is a ``TransferError``
subclass. Each carries a human-readable message and a ``details`` dict
with diagnostic context (status codes, signer status, RPC error codes)
that is safe to log. The classifier in ``custody_send.classify`` maps
these onto the small outcome taxonomy the UI consumes.

Retry policy by type:
    - ValidationError: never retried; the user must correct the input.
    - ConfigurationError: never retried; needs operator intervention.
    - SigningDenied / SigningFailed: terminate the attempt.
    - InsufficientGas: terminate; the user needs to fund the payer.
    - BroadcastRejected / BroadcastTimeout: only the broadcaster's own
      bounded submission retry applies.
    - NetworkError: generic fallback.
"""

from __future__ import annotations

from typing import Any


class TransferError(Exception):
    """Base class for every pipeline failure.

    Args:
        message: Human-readable description.
        details: Diagnostic context. Never contains secrets.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(TransferError):
    """Bad address, bad amount or bad email."""


class RecipientNotFound(ValidationError):
    """A well-formed email has no wallet bound to it."""


class ConfigurationError(TransferError):
    """Required server configuration (mint, network) is missing or malformed."""


class SigningDenied(TransferError):
    """The user declined the approval prompt at the custodial signer."""


class SigningFailed(TransferError):
    """The signer failed or returned a malformed response."""


class InsufficientGas(TransferError):
    """The fee payer lacks native currency to cover fees or rent."""


class BroadcastRejected(TransferError):
    """The network refused the transaction (preflight or execution error)."""


class BroadcastTimeout(TransferError):
    """Confirmation did not arrive within the allowed window."""


class ResolutionError(TransferError):
    """The signer's wallet lookup returned something unusable."""


class ResolutionInProgress(TransferError):
    """An email resolution is already awaiting the signer."""


class NetworkError(TransferError):
    """Unclassified lower-level failure."""
