from pydantic_settings import BaseSettings
from typing import Optional, List

class Settings(BaseSettings):
    PROJECT_NAME: str = "S9 Mini2 Notifications"
    VERSION: str = "1.0.0"

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./notifications.db"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Header populated by the upstream auth layer once the bearer token is verified
    USER_ID_HEADER: str = "X-User-Id"

    PLATFORM_NAME: str = "S9 Mini2"
    CURRENCY_SYMBOL: str = "₹"

    # Notifications
    NOTIFICATION_RECENT_LIMIT: int = 5
    NOTIFICATION_PAGE_SIZE: int = 20
    NOTIFICATION_QUEUE_SIZE: int = 1000
    NOTIFICATION_DISPATCH_WORKERS: int = 4
    NOTIFICATION_RETENTION_DAYS: int = 30
    NOTIFICATION_CLEANUP_STATUS: Optional[str] = "read"
    NOTIFICATION_CLEANUP_PROBABILITY: float = 0.01
    NOTIFICATION_CLEANUP_SCHEDULE_ENABLED: bool = False
    NOTIFICATION_CLEANUP_HOUR: int = 3

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
