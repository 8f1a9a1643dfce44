import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_env: str = os.getenv("APP_ENV", "development").strip().lower()
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./expense_api.db")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    log_json: bool = _env_bool("LOG_JSON", default=False)
    cors_origins: tuple[str, ...] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "*"))
    auth_user_header: str = os.getenv("AUTH_USER_HEADER", "X-Auth-User-Id")
    auth_email_header: str = os.getenv("AUTH_EMAIL_HEADER", "X-Auth-User-Email")
    auth_name_header: str = os.getenv("AUTH_NAME_HEADER", "X-Auth-User-Name")
    admin_external_ids: tuple[str, ...] = field(default_factory=lambda: _env_list("ADMIN_EXTERNAL_IDS"))
    default_currency: str = os.getenv("DEFAULT_CURRENCY", "INR").strip().upper()
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "4000"))

    @property
    def dev_mode(self) -> bool:
        return self.app_env != "production"


settings = Settings()
