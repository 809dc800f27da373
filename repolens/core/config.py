from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

from .errors import ConfigurationError

# .env lives at the project root: repolens/core/config.py -> repolens/core -> repolens -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

OPENAI_KEY_PREFIX = "sk-"
REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


class Settings(BaseSettings):
    openai_api_key: str = ""
    # Comma-separated; when set it wins over OPENAI_API_KEY. A key that fails auth or is rate limited is skipped.
    openai_api_keys: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 60.0
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    github_timeout: float = 30.0
    # redis://... selects the Redis backend, anything else is an SQLAlchemy URL
    store_url: str = "sqlite:///./repolens.db"
    # Upper bound for one background job, external calls included
    job_timeout_seconds: float = 600.0
    max_file_bytes: int = 100_000
    max_repo_files: int = 400
    session_cookie_name: str = "user_session_id"
    session_max_age_days: int = 30
    environment: str = "development"  # production: identity cookie gets Secure=True
    log_level: str = "INFO"
    cors_origins: str = "*"
    rate_limit_per_minute: int = 60
    rate_limit_submit_per_minute: int = 10
    admin_secret: str = ""

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("openai_api_key", "openai_api_keys", "github_token", "store_url", mode="before")
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Trailing whitespace from copy/paste breaks auth headers."""
        return (v or "").strip()

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def uses_redis(self) -> bool:
        return self.store_url.startswith(REDIS_SCHEMES)


settings = Settings()


def get_openai_keys(s: Settings | None = None) -> list[str]:
    """
    Usable OpenAI keys (``sk-`` prefixed, no whitespace).
    OPENAI_API_KEYS as a comma-separated list if present, otherwise OPENAI_API_KEY alone.
    """
    s = s or settings
    keys_raw = (s.openai_api_keys or "").strip()
    if keys_raw:
        keys = [k.strip() for k in keys_raw.split(",") if k.strip() and k.strip().startswith(OPENAI_KEY_PREFIX)]
        if keys:
            return keys
    single = (s.openai_api_key or "").strip()
    if single and single.startswith(OPENAI_KEY_PREFIX):
        return [single]
    return []


def is_openai_configured(s: Settings | None = None) -> bool:
    return len(get_openai_keys(s)) > 0


def validate_settings(s: Settings | None = None) -> None:
    """Raise ConfigurationError naming every missing required value."""
    s = s or settings
    missing = []
    if not is_openai_configured(s):
        missing.append("OPENAI_API_KEY")
    if not s.github_token:
        missing.append("GITHUB_TOKEN")
    if not s.store_url:
        missing.append("STORE_URL")
    if missing:
        raise ConfigurationError(
            f"Invalid environment variables: {', '.join(missing)}. Please check your .env file"
        )
