from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote_plus


SUPPORTED_APP_ENVS = {"SIT", "UAT"}
SUPPORTED_NOTIFICATION_PROVIDERS = {"mock", "fcm"}


def _current_app_env() -> str:
    default_env = "UAT" if os.getenv("RAILWAY_ENVIRONMENT", "").strip() else "SIT"
    raw = os.getenv("APP_ENV", default_env).strip().upper()
    if not raw:
        return default_env
    if raw not in SUPPORTED_APP_ENVS:
        raise ValueError(f"Invalid APP_ENV: {raw}. Supported values: {sorted(SUPPORTED_APP_ENVS)}")
    return raw


def _get_first_set(*env_names: str) -> str:
    for env_name in env_names:
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return ""


def _normalize_database_url(raw_url: str) -> str:
    if not raw_url:
        return raw_url
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
    if raw_url.startswith("postgresql+psycopg://"):
        return raw_url.replace("postgresql+psycopg://", "postgresql+psycopg2://", 1)
    return raw_url


def _with_sslmode_if_needed(db_url: str) -> str:
    if not db_url or "sslmode=" in db_url:
        return db_url
    lowered = db_url.lower()
    if "localhost" in lowered or "127.0.0.1" in lowered:
        return db_url
    sep = "&" if "?" in db_url else "?"
    return f"{db_url}{sep}sslmode=require"


def _build_database_url() -> str:
    prefix = _current_app_env()
    explicit = _get_first_set(f"{prefix}_DATABASE_URL", "DATABASE_URL", "DATABASE_PUBLIC_URL")
    host = _get_first_set(f"{prefix}_PGHOST", "PGHOST")
    port = _get_first_set(f"{prefix}_PGPORT", "PGPORT") or "5432"
    user = _get_first_set(f"{prefix}_PGUSER", "PGUSER")
    password = _get_first_set(f"{prefix}_PGPASSWORD", "PGPASSWORD")
    database = _get_first_set(f"{prefix}_PGDATABASE", "PGDATABASE")

    if explicit:
        return _with_sslmode_if_needed(_normalize_database_url(explicit))

    if host and user and database:
        pwd = quote_plus(password)
        url = f"postgresql+psycopg2://{user}:{pwd}@{host}:{port}/{database}"
        return _with_sslmode_if_needed(url)

    # Local dev fallback when DATABASE_URL is not set.
    sqlite_file = Path(os.getenv("SQLITE_DB_PATH", "./app.db")).as_posix()
    if sqlite_file.startswith("/"):
        return f"sqlite:///{sqlite_file}"
    return f"sqlite:///./{sqlite_file.lstrip('./')}"


def _build_db_schema() -> str:
    prefix = _current_app_env()
    return _get_first_set(f"{prefix}_DB_SCHEMA", "DB_SCHEMA") or "pet_alerts"


def _notification_provider() -> str:
    raw = os.getenv("NOTIFICATION_PROVIDER", "mock").strip().lower() or "mock"
    if raw not in SUPPORTED_NOTIFICATION_PROVIDERS:
        raise ValueError(
            f"Invalid NOTIFICATION_PROVIDER: {raw}. Supported values: {sorted(SUPPORTED_NOTIFICATION_PROVIDERS)}"
        )
    return raw


@dataclass(frozen=True)
class Settings:
    app_env: str = _current_app_env()
    app_name: str = os.getenv("APP_NAME", "pet_alert_notifier")
    app_debug: bool = os.getenv("APP_DEBUG", "false").lower() == "true"
    app_host: str = os.getenv("APP_HOST", "0.0.0.0")
    app_port: int = int(os.getenv("APP_PORT", "8004"))

    database_url: str = _build_database_url()
    db_schema: str = _build_db_schema()
    token_page_size: int = int(os.getenv("TOKEN_PAGE_SIZE", "500"))

    notification_provider: str = _notification_provider()
    firebase_credentials_path: str = os.getenv("FIREBASE_CREDENTIALS_PATH", "")
    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")

    dispatch_batch_size: int = int(os.getenv("DISPATCH_BATCH_SIZE", "500"))
    dispatch_max_retries: int = int(os.getenv("DISPATCH_MAX_RETRIES", "3"))
    dispatch_backoff_seconds: float = float(os.getenv("DISPATCH_BACKOFF_SECONDS", "0.5"))
    dispatch_backoff_max_seconds: float = float(os.getenv("DISPATCH_BACKOFF_MAX_SECONDS", "8"))
    dispatch_timeout_seconds: float = float(os.getenv("DISPATCH_TIMEOUT_SECONDS", "10"))
    dispatch_max_workers: int = int(os.getenv("DISPATCH_MAX_WORKERS", "4"))

    notification_title: str = os.getenv("NOTIFICATION_TITLE", "Yeni Kayıp Evcil Hayvan İlanı!")
    notification_body_template: str = os.getenv(
        "NOTIFICATION_BODY_TEMPLATE",
        "{pet_name} kayboldu. Hemen inceleyin!",
    )
    notification_click_action: str = os.getenv("NOTIFICATION_CLICK_ACTION", "FLUTTER_NOTIFICATION_CLICK")
    pet_name_placeholder: str = os.getenv("PET_NAME_PLACEHOLDER", "Bir evcil hayvan")


settings = Settings()


def get_settings() -> Settings:
    return settings
