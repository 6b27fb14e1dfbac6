from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    database_echo: bool = Field(False, alias="DATABASE_ECHO")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins: List[str] = Field(["*"], alias="CORS_ORIGINS")

    # ISO weekdays (Mon=1 .. Sun=7) that are never teaching days.
    weekly_off_days: List[int] = Field([6], alias="WEEKLY_OFF_DAYS")

    leave_block_overlapping: bool = Field(True, alias="LEAVE_BLOCK_OVERLAPPING")
    leave_attachment_max_bytes: int = Field(5 * 1024 * 1024, alias="LEAVE_ATTACHMENT_MAX_BYTES")
    leave_attachment_max_files: int = Field(5, alias="LEAVE_ATTACHMENT_MAX_FILES")

    allow_future_attendance: bool = Field(False, alias="ALLOW_FUTURE_ATTENDANCE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
