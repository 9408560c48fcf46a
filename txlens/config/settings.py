"""Application settings using Pydantic."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Ledger (JSON-RPC) Configuration
    rpc_url: str = "https://eth.llamarpc.com"
    ledger_timeout_seconds: float = 20.0

    # Trace simulation node (debug_traceTransaction)
    trace_rpc_url: str | None = None
    use_trace_simulation: bool = False

    # Explorer (Etherscan V2) Configuration
    explorer_api_url: str = "https://api.etherscan.io/v2/api"
    explorer_api_key: str | None = None
    explorer_max_concurrency: int = 4

    # Chains
    chain_id: int = 1
    supported_chain_ids: list[int] = [1, 10, 56, 137, 8453, 42161]

    # Offline databases
    label_db_path: Path | None = Path("data/addressInf0.db")
    selector_db_path: Path | None = Path("data/kecc4k256.db")

    # Optional source calls
    source_timeout_seconds: float = 10.0

    # Fan-out caps
    max_token_lookups: int = 5
    calltrace_max_addresses: int = 20
    enrichment_concurrency: int = 5
    calltrace_explain_max_calls: int = 80

    # Truncation budgets (characters)
    contract_source_char_limit: int = 50000
    calltrace_source_char_limit: int = 30000

    # Gas anomaly policy
    gas_abnormal_high_ratio: float = 3.0
    gas_abnormal_low_gwei: float = 0.001

    # Verification
    verification_enabled: bool = True

    # Explorer rate-limit retries
    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    # Logging (CLI root level; --verbose forces DEBUG)
    log_level: str = "WARNING"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
