import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    jwt_secret: str
    jwt_expires_hours: int

    activity_log_workers: int
    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _normalize_database_url(url: str) -> str:
    # Heroku/DO style URLs are not accepted by SQLAlchemy 2.
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_normalize_database_url(_getenv("DATABASE_URL", "sqlite:///roledash.db")),
        jwt_secret=_getenv("JWT_SECRET", "change-me"),
        jwt_expires_hours=_getint("JWT_EXPIRES_HOURS", 24),
        activity_log_workers=max(1, _getint("ACTIVITY_LOG_WORKERS", 2)),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET": s.jwt_secret,
        "JWT_EXPIRES_HOURS": s.jwt_expires_hours,
        "ACTIVITY_LOG_WORKERS": s.activity_log_workers,
        "LOG_LEVEL": s.log_level,
        # request bodies are small JSON documents (1MB)
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
