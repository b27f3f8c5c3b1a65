from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./events.db"
    SQLITE_BUSY_TIMEOUT: float = 30.0
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173", "null"]
    LOG_LEVEL: str = "INFO"
    MAX_BATCH_EVENTS: int = 5000
    TOP_ELEMENTS_LIMIT: int = 10
    RECENT_ACTIVITY_LIMIT: int = 5
    RECENT_ACTIVITY_MINUTES: int = 60
    NOTIFIER_QUEUE_SIZE: int = 100
    SSE_KEEPALIVE_SECONDS: float = 15.0

    class Config:
        env_file = Path(__file__).parent.parent / ".env"
        case_sensitive = True

settings = Settings()
