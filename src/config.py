import base64
import binascii
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

from modules.common.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from the environment or a .env file"""

    APP_NAME: str = "Envelope Signing API"
    APP_VERSION: str = "1.0.0"

    DATABASE_URL: str = "sqlite:///./envelopes.db"

    # No defaults: validate_settings() refuses to start without them
    ENCRYPTION_KEY: Optional[str] = None
    SECRET_KEY: Optional[str] = None
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Blob storage
    STORAGE_BACKEND: str = "local"
    UPLOAD_DIR: str = "uploads"
    AWS_S3_BUCKET_NAME: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None

    # Vision backend (OpenAI-compatible chat completions endpoint)
    VISION_API_URL: str = "https://api.openai.com/v1/chat/completions"
    VISION_API_KEY: Optional[str] = None
    VISION_MODEL: str = "gpt-4o"
    VISION_TIMEOUT_SECONDS: float = 60.0

    WEBHOOK_TIMEOUT_SECONDS: float = 5.0
    SIGNING_LINK_TTL_HOURS: int = 24
    ENVELOPE_TTL_DAYS: int = 7
    FRONTEND_URL: str = "http://localhost:3000"
    MAX_FILE_SIZE: int = 10 * 1024 * 1024

    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


def decode_encryption_key(raw: Optional[str]) -> bytes:
    """
    Decodes ENCRYPTION_KEY (hex or base64) into the 32 raw bytes AES-256 needs
    """
    if not raw:
        raise ConfigurationError("ENCRYPTION_KEY is not configured")

    candidates = []
    try:
        candidates.append(bytes.fromhex(raw))
    except ValueError:
        pass
    try:
        candidates.append(base64.b64decode(raw, validate=True))
    except (binascii.Error, ValueError):
        pass

    for key in candidates:
        if len(key) == 32:
            return key
    raise ConfigurationError("ENCRYPTION_KEY must decode (hex or base64) to exactly 32 bytes")


def validate_settings(settings: "Settings") -> None:
    """Fails fast at startup when a required secret is missing or malformed"""
    decode_encryption_key(settings.ENCRYPTION_KEY)

    if not settings.SECRET_KEY:
        raise ConfigurationError("SECRET_KEY is not configured")

    if settings.STORAGE_BACKEND not in ("local", "s3"):
        raise ConfigurationError(f"Unknown STORAGE_BACKEND '{settings.STORAGE_BACKEND}'")

    if settings.STORAGE_BACKEND == "s3" and not settings.AWS_S3_BUCKET_NAME:
        raise ConfigurationError("STORAGE_BACKEND=s3 requires AWS_S3_BUCKET_NAME")


@lru_cache
def get_settings() -> Settings:
    return Settings()
