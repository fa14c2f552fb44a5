"""
Solana ledger backend.

Public API:

    Protocols (for dependency injection):
        - ``LedgerClient`` — network boundary (blockhash, balances,
          account existence, submission, signature status).
        - ``JsonRpcTransport`` — injectable transport for JSON-RPC.

    Concrete client:
        - ``SolanaRpcClient`` — JSON-RPC implementation of LedgerClient.
        - ``HttpxTransport`` — default httpx-based transport.

    Token primitives (pure):
        - ``derive_token_account``, ``create_token_account_instruction``,
          ``transfer_instruction``.
"""

from custody_send.ledger.client import (
    CONFIRMED,
    FINALIZED,
    AccountNotFound,
    LatestBlockhash,
    LedgerClient,
    RpcError,
    SignatureStatus,
    TokenAccountBalance,
)
from custody_send.ledger.jsonrpc_client import SolanaRpcClient
from custody_send.ledger.token import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    LAMPORTS_PER_SOL,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    create_token_account_instruction,
    decode_transfer_amount,
    derive_token_account,
    transfer_instruction,
)
from custody_send.ledger.transport import HttpxTransport, JsonRpcTransport

__all__ = [
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "CONFIRMED",
    "FINALIZED",
    "LAMPORTS_PER_SOL",
    "SYSTEM_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "AccountNotFound",
    "HttpxTransport",
    "JsonRpcTransport",
    "LatestBlockhash",
    "LedgerClient",
    "RpcError",
    "SignatureStatus",
    "SolanaRpcClient",
    "TokenAccountBalance",
    "create_token_account_instruction",
    "decode_transfer_amount",
    "derive_token_account",
    "transfer_instruction",
]
