"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # ======================
    # Order book feed
    # ======================
    FEED_ENABLED: bool = True
    FEED_WS_URL: str = "wss://ws.okx.com:8443/ws/v5/public"
    FEED_EXCHANGE: str = "OKX"
    FEED_CHANNEL: str = "books5"
    FEED_INSTRUMENT: str = "BTC-USDT"
    FEED_PING_INTERVAL_SECONDS: float = 15.0
    FEED_RECONNECT_DELAY_SECONDS: float = 3.0
    FEED_MAX_RECONNECT_ATTEMPTS: int = 10

    # ======================
    # Simulation defaults
    # ======================
    SIM_QUANTITY_USD: float = 100.0
    SIM_FEE_TIER: str = "VIP0"

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
