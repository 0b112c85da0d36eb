"""Configuration management using Pydantic Settings"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (order history, saved credentials)
    database_url: str = "sqlite:///./bourso_desk.db"

    # External Services
    brokerage_api_base: str = "http://localhost:8001"

    # Service
    service_name: str = "bourso-desk"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0

    # Display / runtime modes, threaded explicitly into the coordinator
    incognito: bool = False
    dev_mode: bool = False

    # Session
    mfa_poll_interval_seconds: float = 5.0

    # Market data
    price_history_days: int = 30
    saved_assets: List[str] = ["1rTWPEA", "1rTPSP5", "1rTAEEM"]


settings = Settings()
