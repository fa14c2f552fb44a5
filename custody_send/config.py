"""Configuration settings for custody-send."""

from functools import lru_cache

from pydantic_settings import BaseSettings
from solders.pubkey import Pubkey

from custody_send.errors import ConfigurationError

DEVNET_USDC_MINT = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Ledger
    solana_rpc_url: str = "https://api.devnet.solana.com"
    rpc_timeout_s: float = 30.0

    # Token
    token_mint_address: str = DEVNET_USDC_MINT
    token_symbol: str = "USDC"
    token_decimals: int = 6

    # Custodial signer
    signer_app_id: str = ""
    signer_api_url: str = "https://api.metakeep.xyz"
    signer_api_key: str | None = None
    sign_timeout_s: float = 300.0  # a human may sit on the approval prompt

    # Broadcast
    confirm_timeout_s: float = 60.0
    confirm_poll_interval_s: float = 1.0
    submit_max_retries: int = 3

    # API server
    host: str = "0.0.0.0"
    port: int = 8000

    # Client cache
    cache_db_path: str = "custody_send.db"
    transfer_api_url: str = "http://localhost:8000"

    # Links surfaced to the user
    explorer_tx_base: str = "https://explorer.solana.com/tx/"
    explorer_cluster: str = "devnet"
    gas_faucet_url: str = "https://faucet.solana.com/"
    token_faucet_url: str = "https://faucet.circle.com/"

    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def mint(self) -> Pubkey:
        """The configured token mint.

        Raises:
            ConfigurationError: If the mint is unset or not a valid address.
        """
        if not self.token_mint_address:
            raise ConfigurationError(
                "token mint address not configured",
                details={"setting": "TOKEN_MINT_ADDRESS"},
            )
        try:
            return Pubkey.from_string(self.token_mint_address)
        except ValueError:
            raise ConfigurationError(
                "token mint address is malformed",
                details={"setting": "TOKEN_MINT_ADDRESS", "value": self.token_mint_address},
            ) from None

    def explorer_url(self, transaction_id: str) -> str:
        return f"{self.explorer_tx_base}{transaction_id}?cluster={self.explorer_cluster}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
