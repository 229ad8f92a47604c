from dotenv import load_dotenv
from pydantic import BaseModel
from typing import List, Optional
import os

# Load .env automatically
load_dotenv()


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "development")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./duo.db")
    sql_echo: bool = os.getenv("SQL_ECHO", "false").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    jwt_secret: Optional[str] = os.getenv("JWT_SECRET")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

    cors_origins: List[str] = _split_csv(os.getenv("CORS_ORIGINS")) or [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Web push is enabled only when all three VAPID values are set
    vapid_subject: Optional[str] = os.getenv("VAPID_SUBJECT")
    vapid_public_key: Optional[str] = os.getenv("VAPID_PUBLIC_KEY")
    vapid_private_key: Optional[str] = os.getenv("VAPID_PRIVATE_KEY")

    @property
    def push_enabled(self) -> bool:
        return bool(self.vapid_subject and self.vapid_public_key and self.vapid_private_key)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Global settings instance
settings = Settings()
