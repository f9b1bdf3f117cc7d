from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class OfferingConfig(BaseModel):
    """Job fee charged by the marketplace for one offering."""

    job_fee: Decimal = Field(default=Decimal("0"), ge=0, description="Fee value (fraction or fixed amount)")
    job_fee_type: str = Field(default="percentage", description="Either 'percentage' or 'fixed'")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Routing service (LI.FI)
    lifi_base_url: str = Field(default="https://li.quest/v1", description="Routing API base URL")
    lifi_api_key: str = Field(default="", description="Optional routing API key")
    lifi_integrator: str = Field(default="lifi-api", description="Integrator tag sent with quotes")
    request_timeout_seconds: int = Field(default=60, description="HTTP request timeout")

    # Signer
    executor_private_key: str = Field(default="", description="Hex private key of the executor wallet")

    # RPC overrides (fall back to the public endpoints in services.chains)
    ethereum_rpc_url: str = Field(default="", description="Ethereum RPC URL override")
    base_rpc_url: str = Field(default="", description="Base RPC URL override")
    arbitrum_rpc_url: str = Field(default="", description="Arbitrum RPC URL override")
    polygon_rpc_url: str = Field(default="", description="Polygon RPC URL override")
    bsc_rpc_url: str = Field(default="", description="BSC RPC URL override")

    # Chain on which buyers pay the executor
    funding_chain: str = Field(default="base", description="Chain used for buyer fund transfers")

    # Balance watcher
    funds_wait_timeout_seconds: float = Field(default=60.0, gt=0, description="Max wait for buyer funds")
    funds_poll_interval_seconds: float = Field(default=5.0, gt=0, description="Balance poll interval")

    # Retry / backoff
    retry_max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_initial_delay_ms: int = Field(default=1000, ge=0, description="First backoff delay")

    # Receipts
    receipt_timeout_seconds: float = Field(default=300.0, gt=0, description="Max wait for a receipt")
    receipt_poll_interval_seconds: float = Field(default=2.0, gt=0, description="Receipt poll interval")

    # Offering fees
    swap_fee: OfferingConfig = Field(
        default_factory=lambda: OfferingConfig(job_fee=Decimal("0.01"), job_fee_type="percentage"),
    )
    bridge_fee: OfferingConfig = Field(
        default_factory=lambda: OfferingConfig(job_fee=Decimal("0.01"), job_fee_type="percentage"),
    )
    wrap_fee: OfferingConfig = Field(
        default_factory=lambda: OfferingConfig(job_fee=Decimal("0.01"), job_fee_type="percentage"),
    )
    transfer_fee: OfferingConfig = Field(
        default_factory=lambda: OfferingConfig(job_fee=Decimal("250"), job_fee_type="fixed"),
    )

    @property
    def has_lifi_key(self) -> bool:
        return bool(self.lifi_api_key)

    def rpc_overrides(self) -> Dict[str, str]:
        """Chain key -> RPC URL for every override that is set."""
        overrides = {
            "ethereum": self.ethereum_rpc_url,
            "base": self.base_rpc_url,
            "arbitrum": self.arbitrum_rpc_url,
            "polygon": self.polygon_rpc_url,
            "bsc": self.bsc_rpc_url,
        }
        return {key: url.strip() for key, url in overrides.items() if url and url.strip()}

    def offering_config(self, kind: str) -> Optional[OfferingConfig]:
        configs: Dict[str, Any] = {
            "swap": self.swap_fee,
            "bridge": self.bridge_fee,
            "wrap": self.wrap_fee,
            "transfer": self.transfer_fee,
        }
        return configs.get(kind)


# Global settings instance
settings = Settings()
