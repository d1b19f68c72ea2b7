"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _load_env_file(path: str = ".env") -> None:
    """Populate os.environ from the provided .env file if it exists."""

    env_path = Path(path)
    if not env_path.exists():
        return

    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    """Centralised project settings based on OS environment variables."""

    environment: str = "dev"
    log_level: str = "INFO"

    app_password: str = ""
    session_cookie_name: str = "auth_session"
    session_max_age: int = 60 * 60 * 24 * 7

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_chat_model: str = "gpt-3.5-turbo"
    openai_max_retries: int = 0

    replicate_api_token: str = ""
    replicate_base_url: str = "https://api.replicate.com/v1"
    replicate_model: str = "black-forest-labs/flux-schnell"
    replicate_aspect_ratio: str = "4:3"

    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    metno_base_url: str = "https://api.met.no/weatherapi/locationforecast/2.0"
    http_user_agent: str = "GeoImageGenerator/1.0"
    request_timeout: float = 30.0

    poll_interval_seconds: float = 5.0
    sign_text: str = "Dentsu"

    @property
    def cookie_secure(self) -> bool:
        return self.environment == "prod"


def _build_settings() -> Settings:
    _load_env_file()

    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        app_password=os.getenv("APP_PASSWORD", ""),
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "auth_session"),
        session_max_age=int(os.getenv("SESSION_MAX_AGE", str(60 * 60 * 24 * 7))),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-3.5-turbo"),
        openai_max_retries=int(os.getenv("OPENAI_MAX_RETRIES", "0")),
        replicate_api_token=os.getenv("REPLICATE_API_TOKEN", ""),
        replicate_base_url=os.getenv("REPLICATE_BASE_URL", "https://api.replicate.com/v1"),
        replicate_model=os.getenv("REPLICATE_MODEL", "black-forest-labs/flux-schnell"),
        replicate_aspect_ratio=os.getenv("REPLICATE_ASPECT_RATIO", "4:3"),
        nominatim_base_url=os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org"),
        metno_base_url=os.getenv(
            "METNO_BASE_URL",
            "https://api.met.no/weatherapi/locationforecast/2.0",
        ),
        http_user_agent=os.getenv("HTTP_USER_AGENT", "GeoImageGenerator/1.0"),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "5")),
        sign_text=os.getenv("SIGN_TEXT", "Dentsu"),
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""

    return _build_settings()
