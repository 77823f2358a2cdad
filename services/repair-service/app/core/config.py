from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "IT Repair Ticket API"
    DATABASE_URL: str = "sqlite:///./repair_service.db"
    LOG_LEVEL: str = "INFO"

    # LINE Messaging API
    LINE_CHANNEL_ACCESS_TOKEN: str = ""
    LINE_API_BASE_URL: str = "https://api.line.me/v2/bot"
    LINE_REQUEST_TIMEOUT: float = 10.0
    LINE_LIFF_ID: Optional[str] = None
    FRONTEND_URL: str = "http://localhost:3000"

    SUPPORT_ROLE: str = "IT"
    NOTIFICATION_RETRY_LIMIT: int = 3
    NOTIFICATION_RETRY_BATCH: int = 10

    # Attachments: "local" writes to UPLOAD_DIR, "inline" stores base64 data URIs
    STORAGE_BACKEND: str = "local"
    UPLOAD_DIR: Path = Path("uploads")
    UPLOAD_URL_PREFIX: str = "/uploads"
    MAX_ATTACHMENTS: int = 3

    GUEST_EMAIL: str = "guest@repair-system.local"
    # Links created from an inbound LIFF user id are trusted without a challenge.
    LIFF_AUTO_VERIFY_LINKS: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
