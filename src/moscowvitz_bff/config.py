"""Environment-backed runtime settings for the BFF service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

DEFAULT_DB_PATH = Path("work/local/moscowvitz_bff.db")
DEFAULT_JWT_SECRET = "fallback-secret"
DEFAULT_CORS_ORIGINS = (
    "http://127.0.0.1:5173",
    "http://localhost:5173",
)

Backend = Literal["sqlite", "supabase"]


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _first_env(*names: str) -> str:
    for name in names:
        value = _env(name)
        if value:
            return value
    return ""


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _float_env(name: str, default: float, *, minimum: float, maximum: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


@dataclass(frozen=True)
class BffSettings:
    """Resolved configuration for one application instance."""

    environment: str
    backend: Backend
    db_path: Path
    jwt_secret: str
    session_ttl_days: int
    http_timeout_seconds: float
    cors_origins: tuple[str, ...]
    supabase_url: str
    supabase_anon_key: str
    version: str

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _resolve_backend(raw: str) -> Backend:
    backend = raw.lower()
    if backend in {"", "sqlite"}:
        return "sqlite"
    if backend == "supabase":
        return "supabase"
    raise RuntimeError("Unsupported MOSCOWVITZ_BACKEND value. Expected sqlite or supabase.")


def _cors_origins() -> tuple[str, ...]:
    raw = _first_env("MOSCOWVITZ_CORS_ORIGINS", "FRONTEND_URL")
    if raw:
        return tuple(origin.strip() for origin in raw.split(",") if origin.strip())
    return DEFAULT_CORS_ORIGINS


def require_session_secret(settings: BffSettings) -> BffSettings:
    """Refuse the built-in signing secret anywhere but development."""
    if settings.jwt_secret == DEFAULT_JWT_SECRET and not settings.is_development:
        raise RuntimeError(
            f"MOSCOWVITZ_JWT_SECRET must be set when MOSCOWVITZ_ENV={settings.environment}."
        )
    return settings


def load_settings(db_path: Path | None = None) -> BffSettings:
    """Read settings from the environment; an explicit db path wins over env."""
    env_db_path = _env("MOSCOWVITZ_DB_PATH")
    if db_path is not None:
        effective_db_path = db_path
    elif env_db_path:
        effective_db_path = Path(env_db_path)
    else:
        effective_db_path = DEFAULT_DB_PATH
    settings = BffSettings(
        environment=(_env("MOSCOWVITZ_ENV", "development") or "development").lower(),
        backend=_resolve_backend(_env("MOSCOWVITZ_BACKEND")),
        db_path=effective_db_path,
        jwt_secret=_first_env("MOSCOWVITZ_JWT_SECRET", "JWT_SECRET") or DEFAULT_JWT_SECRET,
        session_ttl_days=_int_env("MOSCOWVITZ_SESSION_TTL_DAYS", 7, minimum=1, maximum=90),
        http_timeout_seconds=_float_env(
            "MOSCOWVITZ_HTTP_TIMEOUT_SECONDS", 10.0, minimum=1.0, maximum=120.0
        ),
        cors_origins=_cors_origins(),
        supabase_url=_first_env("SUPABASE_URL", "VITE_SUPABASE_URL").rstrip("/"),
        supabase_anon_key=_first_env("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"),
        version=_env("MOSCOWVITZ_VERSION", "1.0.0") or "1.0.0",
    )
    return require_session_secret(settings)
