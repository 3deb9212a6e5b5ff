from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./gensets.db"

    # App
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Auth tokens
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Audit log pagination
    LOG_PAGE_SIZE: int = 50
    LOG_PAGE_SIZE_MAX: int = 500

    # Reporting
    ACTIVITY_WINDOW_DAYS: int = 30

    # First admin, created by `genset-seed-admin`
    ADMIN_USERNAME: str = "admin"
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_PASSWORD: str = ""


settings = Settings()
