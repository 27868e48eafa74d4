"""SQLite-backed identity provider for local development and tests."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

from moscowvitz_bff.adapters.sqlite_content_store import SQLiteContentStore
from moscowvitz_bff.domain.ports import (
    DuplicateAccountError,
    IdentityProviderError,
    InvalidCredentialsError,
    ProviderSession,
    ProviderUser,
    SignupResult,
)

ACCESS_TOKEN_TTL_HOURS = 24
PBKDF2_ITERATIONS = 310_000


def hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = password_hash.split("$", maxsplit=3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    recomputed = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt_hex),
        int(iterations),
    )
    return hmac.compare_digest(recomputed.hex(), digest_hex)


class SQLiteIdentityProvider:
    """Local stand-in for the hosted identity provider: users plus opaque access tokens."""

    def __init__(self, db_path: Path, *, profiles: SQLiteContentStore | None = None) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._profiles = profiles
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS auth_users (
                    user_id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    full_name TEXT,
                    role TEXT NOT NULL DEFAULT 'user',
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS auth_tokens (
                    token_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    token_value TEXT NOT NULL UNIQUE,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES auth_users(user_id)
                )
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_auth_tokens_user
                ON auth_tokens(user_id, expires_at DESC)
                """
            )

    def sign_up(self, *, email: str, password: str, full_name: str | None) -> SignupResult:
        """Create an account; local accounts never need email confirmation."""
        now = datetime.now(UTC).isoformat()
        user_id = uuid4().hex
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO auth_users (user_id, email, full_name, role, password_hash, created_at)
                    VALUES (?, ?, ?, 'user', ?, ?)
                    """,
                    (user_id, email.lower(), full_name, hash_password(password), now),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateAccountError("Email already registered") from exc
        user = self._user_by_id(user_id)
        if user is None:
            raise IdentityProviderError("Created user could not be loaded.")
        self._mirror_profile(user)
        return SignupResult(user=user, requires_confirmation=False)

    def sign_in(self, *, email: str, password: str) -> ProviderSession:
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT user_id, email, full_name, role, password_hash, created_at
                FROM auth_users
                WHERE email = ?
                """,
                (email.lower(),),
            ).fetchone()
        if row is None or not verify_password(password, str(row["password_hash"])):
            raise InvalidCredentialsError("Invalid login credentials")
        user = self._user_from_row(row)
        expires_at = datetime.now(UTC) + timedelta(hours=ACCESS_TOKEN_TTL_HOURS)
        token_value = secrets.token_urlsafe(32)
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO auth_tokens (token_id, user_id, token_value, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    uuid4().hex,
                    user.id,
                    token_value,
                    expires_at.isoformat(),
                    datetime.now(UTC).isoformat(),
                ),
            )
        self._mirror_profile(user)
        return ProviderSession(user=user, access_token=token_value)

    def resolve_user(self, *, access_token: str) -> ProviderUser | None:
        """Resolve an access token into a user if it is still valid."""
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT u.user_id, u.email, u.full_name, u.role, u.created_at
                FROM auth_tokens t
                JOIN auth_users u ON u.user_id = t.user_id
                WHERE t.token_value = ? AND t.expires_at > ?
                """,
                (access_token, datetime.now(UTC).isoformat()),
            ).fetchone()
        if row is None:
            return None
        return self._user_from_row(row)

    def sign_out(self, *, access_token: str) -> None:
        with self._connect() as connection:
            connection.execute("DELETE FROM auth_tokens WHERE token_value = ?", (access_token,))

    def set_role(self, *, email: str, role: str) -> ProviderUser | None:
        """Change a user's role; None when the email is unknown."""
        with self._connect() as connection:
            cursor = connection.execute(
                "UPDATE auth_users SET role = ? WHERE email = ?",
                (role, email.lower()),
            )
            updated_rows = cursor.rowcount
            row = connection.execute(
                "SELECT user_id, email, full_name, role, created_at FROM auth_users WHERE email = ?",
                (email.lower(),),
            ).fetchone()
        if updated_rows == 0 or row is None:
            return None
        user = self._user_from_row(row)
        self._mirror_profile(user)
        return user

    def _user_by_id(self, user_id: str) -> ProviderUser | None:
        with self._connect() as connection:
            row = connection.execute(
                "SELECT user_id, email, full_name, role, created_at FROM auth_users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._user_from_row(row)

    def _mirror_profile(self, user: ProviderUser) -> None:
        if self._profiles is None:
            return
        self._profiles.upsert_profile(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role or "user",
            created_at=user.created_at or datetime.now(UTC).isoformat(),
        )

    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> ProviderUser:
        full_name = row["full_name"]
        return ProviderUser(
            id=str(row["user_id"]),
            email=str(row["email"]),
            role=str(row["role"]),
            full_name=str(full_name) if full_name is not None else None,
            created_at=str(row["created_at"]),
        )
