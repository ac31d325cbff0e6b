"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./lendit.db"

    # Service
    service_name: str = "lendit-gateway"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0

    # Razorpay (payment capture verification)
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_base: str = "https://api.razorpay.com"

    # UPI / bank transfer instructions
    upi_vpa: str = "lendit@upi"
    upi_merchant_name: str = "LendIt"
    platform_bank_name: str = "HDFC Bank"
    platform_account_number: str = "50100123456789"
    platform_ifsc_code: str = "HDFC0001234"
    platform_account_holder: str = "LendIt Technologies"


settings = Settings()
