import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./millat.db")
    APP_ENV = os.getenv("APP_ENV", "development")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", "jwt-access-secret")
    JWT_ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 15))
    REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", 7))
    WS_TOKEN_EXPIRE_MINUTES = int(os.getenv("WS_TOKEN_EXPIRE_MINUTES", 60))
    OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", 15))

    # wait-to-acquire and execution budgets for database work
    DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", 5))
    DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", 10000))

    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@millat.edu")

    INITIAL_ADMIN_EMAIL = os.getenv("INITIAL_ADMIN_EMAIL")
    INITIAL_ADMIN_PASSWORD = os.getenv("INITIAL_ADMIN_PASSWORD")
    INITIAL_ADMIN_NAME = os.getenv("INITIAL_ADMIN_NAME", "Super Admin")

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


settings = Settings()
