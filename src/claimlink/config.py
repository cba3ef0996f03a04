"""Configuration using pydantic-settings.

Settings are read by the caller and handed to claimlink.factory; no
component reads them on its own.
"""

import logging
import shlex
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from CLAIMLINK_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLAIMLINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    # ======================
    # Claim links
    # ======================
    claim_host: str = Field(
        default="https://p2p.linkdrop.io", description="Host that serves claim pages"
    )
    link_version: str = Field(default="3", description="Claim URL format version")

    # ======================
    # Signer service
    # ======================
    signer_url: Optional[str] = Field(default=None, description="HTTP signer endpoint")
    signer_command: Optional[str] = Field(
        default=None, description="Signer program command line (subprocess transport)"
    )
    signer_selector: str = Field(
        default="positional", description="Operation selector style: positional or field"
    )
    signer_api_key: str = Field(default="", description="Bearer token for the HTTP signer")
    signer_timeout: float = Field(default=30.0, description="Seconds per signer request")
    signer_max_attempts: int = Field(
        default=3, description="Attempts for an unreachable signer"
    )
    signer_retry_backoff: float = Field(
        default=0.5, description="Base backoff in seconds, doubled per attempt"
    )

    # ======================
    # Chain
    # ======================
    rpc_url: str = Field(default="https://mainnet.base.org", description="EVM JSON-RPC URL")
    confirmation_timeout: float = Field(
        default=180.0, description="Seconds to wait for deposit confirmation"
    )
    confirmations: int = Field(default=1, description="Blocks required for confirmation")
    poll_interval: float = Field(default=2.0, description="Seconds between receipt polls")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def signer_argv(self) -> list[str]:
        """Signer command split into argv."""
        return shlex.split(self.signer_command) if self.signer_command else []

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "claim_host": self.claim_host,
            "link_version": self.link_version,
            "signer": {
                "url": self.signer_url or "(not set)",
                "command": self.signer_command or "(not set)",
                "selector": self.signer_selector,
                "api_key": "***" if self.signer_api_key else "(not set)",
                "timeout": self.signer_timeout,
                "max_attempts": self.signer_max_attempts,
            },
            "chain": {
                "rpc": self._redact_url(self.rpc_url),
                "confirmation_timeout": self.confirmation_timeout,
                "confirmations": self.confirmations,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials embedded in a URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


def configure_logging(settings: Settings) -> None:
    """Configure root logging for scripts and services."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
