"""Pydantic BaseSettings — venue endpoints, signing context and credentials."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────────
    APP_ENV: Literal["dev", "prod"] = "dev"
    APP_NAME: str = "hl-multisig"
    LOG_LEVEL: str = "INFO"

    # ── Network / API ───────────────────────────────────────────
    HL_IS_TESTNET: bool = False
    HL_MAINNET_API_URL: str = "https://api.hyperliquid.xyz"
    HL_TESTNET_API_URL: str = "https://api.hyperliquid-testnet.xyz"
    HL_REQUEST_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    # ── Signing context ─────────────────────────────────────────
    # Chain id used in the user-signed EIP-712 domain (0x66eee = Arbitrum Sepolia).
    HL_SIGNATURE_CHAIN_ID: str = "0x66eee"
    # 0 disables the per-cosigner timeout.
    HL_SIGNER_TIMEOUT_SECONDS: float = Field(default=0.0, ge=0)
    HL_DEFAULT_VAULT_ADDRESS: str = ""
    # 0 = no expiresAfter on L1 actions.
    HL_EXPIRES_AFTER_OFFSET_MS: int = Field(default=0, ge=0)

    # ── Credentials (never commit real values) ──────────────────
    HL_PRIVATE_KEY: str = ""
    # Comma-separated cosigner keys, leader first.
    HL_COSIGNER_PRIVATE_KEYS: str = ""
    HL_MULTI_SIG_USER: str = ""

    @field_validator("HL_SIGNATURE_CHAIN_ID")
    @classmethod
    def _validate_chain_id(cls, v: str) -> str:
        if not v.startswith("0x"):
            raise ValueError("HL_SIGNATURE_CHAIN_ID must be 0x-prefixed hex")
        int(v, 16)
        return v.lower()

    @property
    def api_url(self) -> str:
        """Exchange base URL for the configured network."""
        return self.HL_TESTNET_API_URL if self.HL_IS_TESTNET else self.HL_MAINNET_API_URL

    @property
    def cosigner_keys(self) -> list[str]:
        return [k.strip() for k in self.HL_COSIGNER_PRIVATE_KEYS.split(",") if k.strip()]


settings = Settings()
