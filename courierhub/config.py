from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    ENV: str = "development"
    DATABASE_URL: str = "sqlite:///./courierhub.db"
    LOG_LEVEL: str = "INFO"

    # Upstream endpoints
    POSTEX_API_BASE_URL: str = "https://api.postex.pk/services/integration/api/order"
    TRANZO_API_BASE_URL: str = "https://api-merchant.tranzo.pk/merchant/api/v1"
    ZOOM_PORTAL_URL: str = "https://portal.zoomcod.com"
    STOREFRONT_API_VERSION: str = "2024-10"

    HTTP_TIMEOUT_SECONDS: int = 30
    HTTP_MAX_CONCURRENCY: int = 5

    # Batching
    SYNC_CHUNK_SIZE: int = 50
    ZOOM_SCRAPE_BATCH_SIZE: int = 5
    PAYMENT_STATUS_BATCH_SIZE: int = 10
    TRACKING_BATCH_SIZE: int = 50

    # Alert defaults
    ALERT_TRANSIT_DAYS: int = 5
    ALERT_RETURN_RATE_PCT: float = 15
    ALERT_DELIVERY_RATE_PCT: float = 80

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
