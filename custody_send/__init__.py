"""
custody-send: token transfers signed by a custodial wallet.

A send is a pipeline:
- resolve the recipient (ledger address or email)
- build an unsigned transfer, creating the recipient's token account if needed
- sign it through the custodial signer
- broadcast and confirm it
- refresh the cached balances

Every failure is classified into a small set of user-facing outcomes.
"""

__version__ = "0.1.0"

from custody_send.balances import BalanceCache, fetch_balances
from custody_send.broadcaster import Broadcaster
from custody_send.builder import BuiltTransfer, TransferBuilder
from custody_send.classify import KeywordAdapter, Outcome, OutcomeKind, classify, describe
from custody_send.config import Settings, get_settings
from custody_send.custodial_http import HttpCustodialSigner
from custody_send.errors import (
    BroadcastRejected,
    BroadcastTimeout,
    ConfigurationError,
    InsufficientGas,
    NetworkError,
    RecipientNotFound,
    ResolutionError,
    ResolutionInProgress,
    SigningDenied,
    SigningFailed,
    TransferError,
    ValidationError,
)
from custody_send.models import (
    BalanceSnapshot,
    BroadcastReceipt,
    SignatureEnvelope,
    SignedTransaction,
    TransferIntent,
    UnsignedTransactionMessage,
    WalletSession,
)
from custody_send.pipeline import SendFlow, SendResult
from custody_send.resolver import AddressResolver, IdentifierKind, ResolvedAddress
from custody_send.session import CachedWallet, SessionStore
from custody_send.signer import CustodialSigner, SignResponse, WalletLookup
from custody_send.signing import SigningCoordinator, compose_reason, decode_signature

__all__ = [
    "AddressResolver",
    "BalanceCache",
    "BalanceSnapshot",
    "BroadcastReceipt",
    "BroadcastRejected",
    "BroadcastTimeout",
    "Broadcaster",
    "BuiltTransfer",
    "CachedWallet",
    "ConfigurationError",
    "CustodialSigner",
    "HttpCustodialSigner",
    "IdentifierKind",
    "InsufficientGas",
    "KeywordAdapter",
    "NetworkError",
    "Outcome",
    "OutcomeKind",
    "RecipientNotFound",
    "ResolutionError",
    "ResolutionInProgress",
    "ResolvedAddress",
    "SendFlow",
    "SendResult",
    "SessionStore",
    "Settings",
    "SignResponse",
    "SignatureEnvelope",
    "SignedTransaction",
    "SigningCoordinator",
    "SigningDenied",
    "SigningFailed",
    "TransferBuilder",
    "TransferError",
    "TransferIntent",
    "UnsignedTransactionMessage",
    "ValidationError",
    "WalletLookup",
    "WalletSession",
    "classify",
    "compose_reason",
    "decode_signature",
    "describe",
    "fetch_balances",
    "get_settings",
]
