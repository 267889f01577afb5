from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "BlockServed Notice Service"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str

    # ─────────── JWT / ADMIN AUTH ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # ─────────── DOCUMENT ACCESS ───────────
    access_token_ttl_minutes: int = 60
    access_rate_limit_per_minute: int = 30

    # ─────────── CHAIN ───────────
    default_chain: str = "tron-mainnet"
    explorer_base_url: str = "https://tronscan.org/#/transaction"
    tron_api_url: str = "https://api.trongrid.io"
    tron_api_key: str = ""
    contract_address: str = ""
    chain_timeout_seconds: float = 15.0
    chain_max_retries: int = 3
    chain_backoff_seconds: float = 1.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
