from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "WebCare Dashboard"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./webcare.db"

    # Redis / Celery
    REDIS_URL: str = "redis://localhost:6379/0"
    TIMEZONE: str = "UTC"
    AUTO_SYNC_INTERVAL_SECONDS: float = 6 * 3600.0

    # WP Remote Manager client
    WRM_TIMEOUT: float = 30.0
    WRM_UPDATE_TIMEOUT: float = 240.0
    WRM_MIN_REQUEST_INTERVAL: float = 3.0  # the remote plugin rate-limits bursts
    WRM_RATE_LIMIT_WAIT: float = 65.0
    WRM_VERIFY_ATTEMPTS: int = 4
    WRM_VERIFY_WAIT: float = 5.0
    MAINTENANCE_MESSAGE: str = "Site is temporarily unavailable for maintenance."

    # Updates
    UPDATE_LOCK_TIMEOUT: int = 30 * 60

    # Security
    SECRET_KEY: str = "changethis_to_a_secure_random_string_in_production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7 # 7 days

    class Config:
        env_file = ".env"

settings = Settings()
