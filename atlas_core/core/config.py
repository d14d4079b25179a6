# atlas_core/core/config.py

from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from loguru import logger
from pathlib import Path
from typing import Annotated, Any, List, Tuple
import json
import warnings

DEV_JWT_SECRET = "dev-secret"


def find_dotenv_path(filename: str = '.env', usecwd: bool = False) -> str | None:
    """Walks up from this file (or the CWD) looking for a dotenv file."""
    start_dir = Path.cwd() if usecwd else Path(__file__).resolve().parent
    current_dir = start_dir
    for _ in range(10):
        env_path = current_dir / filename
        if env_path.is_file():
            logger.debug(f"Found {filename} file at: {env_path}")
            return str(env_path)
        parent_dir = current_dir.parent
        if parent_dir == current_dir:
            break
        current_dir = parent_dir
    if not usecwd:
        env_path_cwd = Path.cwd() / filename
        if env_path_cwd.is_file():
            logger.debug(f"Found {filename} file at CWD: {env_path_cwd}")
            return str(env_path_cwd)
    logger.debug(f"{filename} not found in parent directories of {start_dir} or CWD.")
    return None


def dotenv_files(names: Tuple[str, ...] = (".env", ".env.local")) -> Tuple[str, ...] | None:
    """Dotenv files that exist, in load order (later files override earlier ones)."""
    found = tuple(path for path in (find_dotenv_path(name) for name in names) if path)
    return found or None


class Settings(BaseSettings):
    PROJECT_NAME: str = "Atlas Core"
    API_PREFIX: str = "/endpoints"
    LOG_LEVEL: str = "INFO"
    FRONTEND_ORIGIN: str = "http://localhost:3000"
    APP_URL: str | None = None

    # Database
    MONGODB_URI: str = "mongodb://localhost:27017/atlas"
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY_SECONDS: float = 0.25

    # Session
    JWT_SECRET: str = DEV_JWT_SECRET
    ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = "atlas_session"
    SESSION_DAYS: int = 30
    LOGIN_DOMAIN: str = "atlas.local"

    # Business calendar
    APP_TIMEZONE: str = "America/La_Paz"

    # Feature flags
    DEMO_MODE: bool = False
    DISABLED_MODULES: Annotated[List[str], NoDecode] = Field(default_factory=list)

    # AI assistant
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4.1-mini"
    OPENAI_API_URL: str = "https://api.openai.com/v1/chat/completions"

    # Geocoding
    OPENCAGE_API_KEY: str | None = None
    NOMINATIM_USER_AGENT: str = "atlas-suite/1.0 (contact: support@atlas.local)"

    # WhatsApp Cloud API
    WHATSAPP_API_URL: str = "https://graph.facebook.com/v18.0"
    WHATSAPP_API_TOKEN: str | None = None
    WHATSAPP_PHONE_NUMBER_ID: str | None = None

    model_config = SettingsConfigDict(
        env_file=dotenv_files(),
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    @field_validator("DISABLED_MODULES", mode="before")
    @classmethod
    def split_module_list(cls, value: Any) -> Any:
        """Accepts a JSON list or a comma-separated string such as `cash,hr`."""
        if not isinstance(value, str):
            return value
        text = value.strip()
        if text.startswith("["):
            return json.loads(text)
        return [part.strip() for part in text.split(",") if part.strip()]

    @property
    def using_fallback_secret(self) -> bool:
        return self.JWT_SECRET == DEV_JWT_SECRET

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.WHATSAPP_API_TOKEN and self.WHATSAPP_PHONE_NUMBER_ID)


@lru_cache()
def get_settings() -> Settings:
    """Loads and validates the application settings."""
    logger.info("Loading application settings...")
    env_files_found = dotenv_files()
    if env_files_found:
        logger.info(f"Loading environment variables from: {', '.join(env_files_found)}")
    else:
        logger.warning("No .env file found. Loading settings from system environment variables only.")

    try:
        settings_instance = Settings()
    except ValueError as val_err:
        logger.critical(f"CRITICAL ERROR in settings validation: {val_err}")
        raise SystemExit(f"Settings validation failed: {val_err}")

    if settings_instance.using_fallback_secret:
        logger.warning("SECURITY WARNING: JWT_SECRET not set, using the development secret.")
        warnings.warn("JWT_SECRET not set, using the development secret.")

    if not settings_instance.whatsapp_configured:
        logger.warning("WhatsApp API credentials missing (WHATSAPP_API_TOKEN, WHATSAPP_PHONE_NUMBER_ID). Survey dispatch disabled.")
    if not settings_instance.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY missing. The business assistant will answer 503.")
    if not settings_instance.OPENCAGE_API_KEY:
        logger.info("OPENCAGE_API_KEY missing. Geocoding will use Nominatim only.")

    logger.info("Settings loaded and validated successfully.")
    return settings_instance


settings = get_settings()
