"""Application configuration using pydantic-settings.

Network endpoints, bundler/paymaster access and receipt polling limits for the
agent account withdrawal service.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Networks
    # ======================
    supported_networks: str = Field(
        default="base-mainnet,base-sepolia",
        description="Comma-separated list of enabled network identifiers",
    )
    rpc_url_overrides: str = Field(
        default="",
        description="Comma-separated network=url pairs replacing the default RPC URL",
    )

    # ======================
    # Alchemy (RPC + balances)
    # ======================
    alchemy_api_key: str = Field(default="", description="Alchemy API key")
    alchemy_portfolio_url: str = Field(
        default="https://api.g.alchemy.com/data/v1",
        description="Alchemy Portfolio API base URL",
    )

    # ======================
    # ZeroDev (bundler + paymaster)
    # ======================
    zerodev_bundler_url: str = Field(
        default="",
        description="ZeroDev bundler base URL, the chain id is appended per network",
    )
    zerodev_paymaster_url: Optional[str] = Field(
        default=None,
        description="ZeroDev paymaster base URL (defaults to the bundler URL)",
    )
    sponsor_withdraw_gas: bool = Field(
        default=False, description="Sponsor withdrawal gas through the paymaster"
    )

    # ======================
    # Receipt polling
    # ======================
    receipt_poll_interval: float = Field(
        default=3.0, description="Seconds between user operation receipt polls"
    )
    receipt_poll_attempts: int = Field(
        default=5, description="Maximum number of receipt polls per submission"
    )
    http_timeout: float = Field(default=30.0, description="Upstream HTTP timeout in seconds")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def network_ids(self) -> list[str]:
        """Parse enabled network identifiers."""
        return [n.strip().lower() for n in self.supported_networks.split(",") if n.strip()]

    @property
    def rpc_overrides(self) -> dict[str, str]:
        """Parse RPC URL overrides into a network -> url mapping."""
        overrides = {}
        for pair in self.rpc_url_overrides.split(","):
            if "=" not in pair:
                continue
            network, url = pair.split("=", 1)
            overrides[network.strip().lower()] = url.strip()
        return overrides

    @property
    def has_bundler(self) -> bool:
        """Check if a bundler endpoint is configured."""
        return bool(self.zerodev_bundler_url)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "networks": self.network_ids,
            "alchemy_api_key": "***" if self.alchemy_api_key else "(not set)",
            "bundler": self._redact_url(self.zerodev_bundler_url) or "(not set)",
            "paymaster": self._redact_url(self.zerodev_paymaster_url or "") or "(bundler)",
            "sponsor_withdraw_gas": self.sponsor_withdraw_gas,
            "receipt_polling": {
                "interval": self.receipt_poll_interval,
                "attempts": self.receipt_poll_attempts,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact the project/api-key path segment of a provider URL."""
        if "/api/v3/" in url:
            head, _ = url.split("/api/v3/", 1)
            return f"{head}/api/v3/***"
        if "/v2/" in url:
            head, _ = url.split("/v2/", 1)
            return f"{head}/v2/***"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
