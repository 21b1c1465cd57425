"""
Configuration management using Pydantic settings.
Loads environment variables for Supabase, the Stock ERP API and the sync engine.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Supabase Configuration
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Stock ERP API Configuration
    # Connection details normally live in the system_settings table
    # (stock_api_url / stock_api_key). Legacy deployments set the URL here.
    anajak_stock_api_url: str = ""
    stock_api_timeout_seconds: float = 30.0

    # Application Configuration
    app_environment: str = "development"
    log_level: str = "INFO"

    # Sync Configuration
    stock_sync_page_size: int = 100
    stock_sync_recent_products_limit: int = 20
    stock_sync_max_retry_attempts: int = 3
    retry_backoff_multiplier: float = 2.0
    retry_initial_delay_seconds: float = 1.0

    # Inventory movement defaults
    default_issue_location: str = "WH-MAIN"
    default_receive_location: str = "WH-SHIP"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
