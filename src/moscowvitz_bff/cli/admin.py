"""Promote or demote a local account's role."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from moscowvitz_bff.adapters.observability import configure_runtime_logging
from moscowvitz_bff.adapters.sqlite_content_store import SQLiteContentStore
from moscowvitz_bff.adapters.sqlite_identity_provider import SQLiteIdentityProvider
from moscowvitz_bff.config import load_settings

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Set the role of a local BFF account.")
    parser.add_argument("email")
    parser.add_argument("--role", choices=("admin", "user"), default="admin")
    parser.add_argument("--db-path", default="")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_runtime_logging()
    parsed = build_arg_parser().parse_args(argv)
    db_path = str(parsed.db_path).strip()
    settings = load_settings(db_path=Path(db_path) if db_path else None)
    store = SQLiteContentStore(db_path=settings.db_path)
    provider = SQLiteIdentityProvider(settings.db_path, profiles=store)
    user = provider.set_role(email=str(parsed.email), role=str(parsed.role))
    if user is None:
        logger.error("admin.set_role unknown_email=%s", parsed.email)
        print(f"No account registered for {parsed.email}")
        return 1
    logger.info("admin.set_role user_id=%s role=%s", user.id, user.role)
    print(f"{user.email} is now {user.role}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
