"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from bloom.errors import ConfigurationError


class Settings(BaseSettings):
    HAUT_API_KEY: str = ""
    HAUT_COMPANY_ID: str = ""
    HAUT_DATASET_ID: str = ""
    HAUT_BASE_URL: str = "https://saas.haut.ai"
    HAUT_TIMEOUT_S: float = 30.0

    POLL_MAX_ATTEMPTS: int = 45
    POLL_DELAY_MS: int = 2000
    DEFAULT_SUBJECT_NAME: str = "Bloom Web User"

    OPENAI_API_KEY: str = ""
    OPENAI_PROJECT_ID: str = ""
    OPENAI_MODEL: str = "gpt-4.1-mini"
    ROUTINE_MAX_OUTPUT_TOKENS: int = 2000
    CHAT_MAX_OUTPUT_TOKENS: int = 600

    MOCK_MODELS: bool = False

    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000", "*"]

    model_config = {"env_prefix": "BLOOM_", "env_file": ".env", "extra": "ignore"}


settings = Settings()

_ENV_PREFIX = "BLOOM_"


def missing_haut_settings(s: Settings | None = None) -> list[str]:
    """Return the env var names of the vendor credentials that are unset."""
    s = s or settings
    names = ("HAUT_API_KEY", "HAUT_COMPANY_ID", "HAUT_DATASET_ID")
    return [_ENV_PREFIX + n for n in names if not getattr(s, n).strip()]


def missing_openai_settings(s: Settings | None = None) -> list[str]:
    s = s or settings
    if s.MOCK_MODELS or s.OPENAI_API_KEY.strip():
        return []
    return [_ENV_PREFIX + "OPENAI_API_KEY"]


def require_haut_settings(s: Settings | None = None) -> None:
    missing = missing_haut_settings(s)
    if missing:
        raise ConfigurationError(
            "Missing Haut.AI configuration", details={"missing": missing}
        )


def require_openai_settings(s: Settings | None = None) -> None:
    missing = missing_openai_settings(s)
    if missing:
        raise ConfigurationError(
            "Missing generative model configuration", details={"missing": missing}
        )
