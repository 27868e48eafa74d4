"""`moscowvitz-bff`: check the runtime settings, then serve the API under uvicorn."""

from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import uvicorn

from moscowvitz_bff.adapters.observability import configure_runtime_logging
from moscowvitz_bff.config import BffSettings, load_settings

APP_IMPORT_PATH = "moscowvitz_bff.api.app:app"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001

logger = logging.getLogger(__name__)


def _env_port() -> int:
    raw = os.environ.get("PORT", "").strip()
    try:
        return int(raw) if raw else DEFAULT_PORT
    except ValueError:
        return DEFAULT_PORT


@dataclass(frozen=True)
class ServeOptions:
    host: str
    port: int
    reload: bool
    backend: str | None
    db_path: Path | None
    check_only: bool = False

    @classmethod
    def from_args(cls, parsed: argparse.Namespace) -> ServeOptions:
        db_path = str(parsed.db_path).strip()
        return cls(
            host=str(parsed.host),
            port=int(parsed.port),
            reload=bool(parsed.reload),
            backend=str(parsed.backend) if parsed.backend else None,
            db_path=Path(db_path) if db_path else None,
            check_only=bool(parsed.check),
        )

    def export_environment(self) -> None:
        """Pass backend choices to the app module through its env variables.

        uvicorn imports `APP_IMPORT_PATH` itself (again in each reload
        worker), so flags cannot reach `create_app` any other way.
        """
        if self.db_path is not None:
            os.environ["MOSCOWVITZ_DB_PATH"] = str(self.db_path)
        if self.backend is not None:
            os.environ["MOSCOWVITZ_BACKEND"] = self.backend


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the moscowvitz BFF API.")
    parser.add_argument("--host", default=os.environ.get("MOSCOWVITZ_HOST", "").strip() or DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=_env_port())
    parser.add_argument("--reload", action="store_true")
    parser.add_argument(
        "--backend",
        choices=("sqlite", "supabase"),
        default="",
        help="Storage and identity backend (default: MOSCOWVITZ_BACKEND or sqlite).",
    )
    parser.add_argument(
        "--db-path",
        default="",
        help="SQLite path for the local backend (default: work/local/moscowvitz_bff.db).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate settings and exit without starting the server.",
    )
    return parser


def preflight(options: ServeOptions) -> BffSettings:
    """Resolve settings exactly as the app will; raises RuntimeError when they are unusable."""
    options.export_environment()
    settings = load_settings(db_path=options.db_path)
    logger.info(
        "serve.settings environment=%s backend=%s version=%s",
        settings.environment,
        settings.backend,
        settings.version,
    )
    return settings


def main(argv: list[str] | None = None) -> int:
    configure_runtime_logging()
    options = ServeOptions.from_args(build_arg_parser().parse_args(argv))
    try:
        settings = preflight(options)
    except RuntimeError as exc:
        logger.error("serve.invalid_settings error=%s", exc)
        print(f"Refusing to start: {exc}")
        return 2
    if options.check_only:
        print(f"Settings OK: environment={settings.environment} backend={settings.backend}")
        return 0
    uvicorn.run(
        APP_IMPORT_PATH,
        host=options.host,
        port=options.port,
        reload=options.reload,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
