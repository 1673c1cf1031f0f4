from pydantic_settings import BaseSettings
from typing import Optional, List

class Settings(BaseSettings):
    PROJECT_NAME: str = "LMS Course Service"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change-me-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 2

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_HOST: Optional[str] = None
    DATABASE_PORT: Optional[str] = None
    DATABASE_USER: Optional[str] = None
    DATABASE_PASSWORD: Optional[str] = None
    DATABASE_NAME: Optional[str] = None

    DATABASE_URL: str = "sqlite:///./lms.db"
    TEST_DATABASE_URL: Optional[str] = None

    def __init__(self, **data):
        super().__init__(**data)
        if self.DATABASE_HOST and self.DATABASE_NAME:
            self.DATABASE_URL = (
                f'postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}'
                f'@{self.DATABASE_HOST}:{self.DATABASE_PORT or "5432"}/{self.DATABASE_NAME}'
            )

    # Payments
    PAYMENT_PROCESSOR: str = "stripe"  # stripe, simulated
    STRIPE_TEST_MODE: bool = True
    STRIPE_TEST_SECRET_KEY: str = ""
    STRIPE_LIVE_SECRET_KEY: str = ""
    STRIPE_TEST_WEBHOOK_SECRET: str = ""
    STRIPE_LIVE_WEBHOOK_SECRET: str = ""
    STRIPE_TIMEOUT_SECONDS: int = 30
    DEFAULT_CURRENCY: str = "EUR"

    # Progress
    COMPLETION_THRESHOLD: float = 0.9

    # Email
    SENDGRID_API_KEY: str = ""
    EMAILS_FROM_EMAIL: str = "no-reply@example.com"
    EMAILS_FROM_NAME: str = "LMS"
    EMAILS_ENABLED: bool = True
    LOGIN_URL: str = "http://localhost:3000/login"

    # Cache
    CACHE_ENABLED: bool = True
    CACHE_TTL: int = 300
    CACHE_NAMESPACE: str = "lms"
    REDIS_URL: Optional[str] = None

    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
