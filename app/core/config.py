from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # App Basics
    app_env: str = "dev"
    app_name: str = "M-Pesa Account Purchase"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "info"

    # Database (key-value storage for the price feed and the purchase record)
    database_url: str = "sqlite:///./dev.db"
    db_echo: bool = False

    # PayHero (STK push gateway)
    payhero_base_url: str = "https://api.payhero.stkpush.co.ke"
    payhero_platform: str = "HK93V1"
    payhero_account_id: str = "4596"
    payhero_auth_token: str = ""
    payhero_timeout_seconds: float = 20.0

    # Pricing
    usd_to_ksh: float = 129.4
    reference_prefix: str = "REMO"

    # Payment lifecycle
    # polling: bounded status polls by checkout request id (default)
    # verify_reference: verify loop keyed by our own reference
    # fixed_delay: assume success after a delay, demo only, never for production
    confirmation_strategy: Literal["polling", "verify_reference", "fixed_delay"] = "polling"
    # fail_fast: initiation transport error -> failed
    # optimistic: keep waiting in case the prompt still reached the phone
    initiation_failure_policy: Literal["fail_fast", "optimistic"] = "fail_fast"
    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = 6
    fixed_delay_seconds: float = 15.0
    verify_interval_seconds: float = 5.0
    verify_max_attempts: int | None = None
    # Unsafe: a verification transport error resolves as success
    verify_errors_as_success: bool = False

    # Tell pydantic to read from .env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

settings = Settings()
