import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Identity
    AUTH_JWT_SECRET: Optional[str] = None
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_ALLOW_HEADER_FALLBACK: bool = False  # X-User-Id header (dev/tests only)

    # Generative model endpoint
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    PROVIDER_TIMEOUT_SECONDS: float = 120.0

    # Retry policy (attempts include the first try)
    GENERATION_MAX_ATTEMPTS: int = 3
    GENERATION_BASE_DELAY_SECONDS: float = 2.0

    # Reference assets: reject above MAX early, keep at most CAP
    MAX_REFERENCE_ASSETS: int = 10
    REFERENCE_ASSET_CAP: int = 5

    # Free allotments per team
    FREE_PERSONA_CREATIONS: int = 3
    FREE_THEME_CREATIONS: int = 3
    FREE_BRAND_CREATIONS: int = 3

    # Initial balances for a newly provisioned team
    SIGNUP_CREDITS: int = 0
    SIGNUP_IMAGE_CREDITS: int = 0

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("brandforge")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "GEMINI_API_KEY",
        "AUTH_JWT_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
