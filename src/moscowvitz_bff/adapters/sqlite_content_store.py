"""SQLite-backed content store for local development and tests."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from uuid import uuid4

from moscowvitz_bff.domain.models import (
    OWNER_COLUMN,
    PROFILES_TABLE,
    RESOURCE_TABLES,
    TIMESTAMP_COLUMNS,
    Row,
)
from moscowvitz_bff.domain.ports import StoreError

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL,
        full_name TEXT,
        role TEXT NOT NULL DEFAULT 'user',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS worlds (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapters (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        chapter_number INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (world_id) REFERENCES worlds(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        world_id TEXT,
        chapter_id TEXT,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        timeline_order INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (world_id) REFERENCES worlds(id) ON DELETE CASCADE,
        FOREIGN KEY (chapter_id) REFERENCES chapters(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scenes (
        id TEXT PRIMARY KEY,
        chapter_id TEXT,
        event_id TEXT,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        scene_order INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (chapter_id) REFERENCES chapters(id) ON DELETE CASCADE,
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS characters (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (world_id) REFERENCES worlds(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dialogues (
        id TEXT PRIMARY KEY,
        scene_id TEXT,
        character_id TEXT,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT,
        dialogue_type TEXT NOT NULL DEFAULT 'dialogue',
        order_in_scene INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (scene_id) REFERENCES scenes(id) ON DELETE CASCADE,
        FOREIGN KEY (character_id) REFERENCES characters(id) ON DELETE SET NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_worlds_user_created ON worlds(user_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_chapters_world ON chapters(world_id, chapter_number)",
    "CREATE INDEX IF NOT EXISTS idx_events_chapter ON events(chapter_id, timeline_order)",
    "CREATE INDEX IF NOT EXISTS idx_scenes_event ON scenes(event_id, scene_order)",
    "CREATE INDEX IF NOT EXISTS idx_characters_world ON characters(world_id, name)",
    "CREATE INDEX IF NOT EXISTS idx_dialogues_scene ON dialogues(scene_id, order_in_scene)",
)


def _allowed_columns() -> dict[str, frozenset[str]]:
    allowed = {
        PROFILES_TABLE: frozenset({"id", "email", "full_name", "role", "created_at"}),
    }
    for layout in RESOURCE_TABLES.values():
        allowed[layout.table] = frozenset(
            {"id", OWNER_COLUMN, *TIMESTAMP_COLUMNS, *layout.columns}
        )
    return allowed


_COLUMNS = _allowed_columns()


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class SQLiteContentStore:
    """Persist worlds and their descendants in one SQLite database."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as connection:
                yield connection
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def _initialize_schema(self) -> None:
        with self._transaction() as connection:
            for statement in _SCHEMA:
                connection.execute(statement)

    @staticmethod
    def _check_table(table: str) -> frozenset[str]:
        columns = _COLUMNS.get(table)
        if columns is None:
            raise StoreError(f"Unknown table: {table}")
        return columns

    @classmethod
    def _check_columns(cls, table: str, names: Sequence[str]) -> None:
        allowed = cls._check_table(table)
        unknown = [name for name in names if name not in allowed]
        if unknown:
            raise StoreError(f"Unknown column(s) for {table}: {', '.join(sorted(unknown))}")

    def ping(self) -> None:
        """Raise `StoreError` when the database cannot answer a trivial query."""
        with self._transaction() as connection:
            connection.execute("SELECT COUNT(*) FROM worlds").fetchone()

    def get_owner(self, *, table: str, row_id: str) -> str | None:
        """Point lookup of the owning `user_id` column."""
        self._check_table(table)
        with self._transaction() as connection:
            row = connection.execute(
                f"SELECT user_id FROM {table} WHERE id = ?",
                (row_id,),
            ).fetchone()
        if row is None:
            return None
        return str(row["user_id"])

    def get_row(self, *, table: str, row_id: str, owner_id: str | None = None) -> Row | None:
        self._check_table(table)
        query = f"SELECT * FROM {table} WHERE id = ?"
        params: list[object] = [row_id]
        if owner_id is not None:
            query += " AND user_id = ?"
            params.append(owner_id)
        with self._transaction() as connection:
            row = connection.execute(query, params).fetchone()
        return dict(row) if row is not None else None

    def list_rows(
        self,
        *,
        table: str,
        owner_id: str,
        filters: Mapping[str, str],
        order_column: str,
        descending: bool,
    ) -> list[Row]:
        """Return one owner's rows, optionally narrowed by parent-id filters."""
        self._check_columns(table, [*filters, order_column])
        clauses = ["user_id = ?"]
        params: list[object] = [owner_id]
        for column, value in filters.items():
            clauses.append(f"{column} = ?")
            params.append(value)
        direction = "DESC" if descending else "ASC"
        with self._transaction() as connection:
            rows = connection.execute(
                f"""
                SELECT * FROM {table}
                WHERE {" AND ".join(clauses)}
                ORDER BY {order_column} {direction}, created_at DESC
                """,
                params,
            ).fetchall()
        return [dict(row) for row in rows]

    def insert_row(self, *, table: str, values: Mapping[str, object]) -> Row:
        payload = dict(values)
        payload.setdefault("id", uuid4().hex)
        columns = list(payload)
        self._check_columns(table, columns)
        with self._transaction() as connection:
            connection.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({_placeholders(len(columns))})",
                [payload[column] for column in columns],
            )
        created = self.get_row(table=table, row_id=str(payload["id"]))
        if created is None:
            raise StoreError(f"Created {table} row could not be loaded.")
        return created

    def update_row(
        self,
        *,
        table: str,
        row_id: str,
        owner_id: str,
        values: Mapping[str, object],
    ) -> Row | None:
        """Update one owned row; None when no row matched id and owner."""
        columns = list(values)
        self._check_columns(table, columns)
        if not columns:
            return self.get_row(table=table, row_id=row_id, owner_id=owner_id)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        with self._transaction() as connection:
            cursor = connection.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ? AND user_id = ?",
                [*(values[column] for column in columns), row_id, owner_id],
            )
            updated_rows = cursor.rowcount
        if updated_rows == 0:
            return None
        return self.get_row(table=table, row_id=row_id, owner_id=owner_id)

    def delete_row(self, *, table: str, row_id: str, owner_id: str) -> bool:
        self._check_table(table)
        with self._transaction() as connection:
            cursor = connection.execute(
                f"DELETE FROM {table} WHERE id = ? AND user_id = ?",
                (row_id, owner_id),
            )
            deleted_rows = cursor.rowcount
        return deleted_rows > 0

    def fetch_world_trees(
        self, *, owner_id: str | None, world_id: str | None = None
    ) -> list[Row]:
        """Read worlds with chapters/events/scenes/dialogues and characters.

        All levels are read inside one connection so the tree reflects a
        single snapshot.
        """
        clauses: list[str] = []
        params: list[object] = []
        if owner_id is not None:
            clauses.append("user_id = ?")
            params.append(owner_id)
        if world_id is not None:
            clauses.append("id = ?")
            params.append(world_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._transaction() as connection:
            worlds = [
                dict(row)
                for row in connection.execute(
                    f"SELECT * FROM worlds {where} ORDER BY created_at DESC", params
                ).fetchall()
            ]
            world_ids = [str(world["id"]) for world in worlds]
            chapters = self._children(connection, "chapters", "world_id", world_ids, "chapter_number")
            characters = self._children(connection, "characters", "world_id", world_ids, "name")
            chapter_ids = [str(chapter["id"]) for chapter in chapters]
            events = self._children(connection, "events", "chapter_id", chapter_ids, "timeline_order")
            event_ids = [str(event["id"]) for event in events]
            scenes = self._children(connection, "scenes", "event_id", event_ids, "scene_order")
            scene_ids = [str(scene["id"]) for scene in scenes]
            dialogues = self._children(
                connection, "dialogues", "scene_id", scene_ids, "order_in_scene"
            )

        _attach(scenes, dialogues, key="scene_id", relation="dialogues")
        _attach(events, scenes, key="event_id", relation="scenes")
        _attach(chapters, events, key="chapter_id", relation="events")
        _attach(worlds, chapters, key="world_id", relation="chapters")
        _attach(worlds, characters, key="world_id", relation="characters")
        return worlds

    @staticmethod
    def _children(
        connection: sqlite3.Connection,
        table: str,
        parent_column: str,
        parent_ids: Sequence[str],
        order_column: str,
    ) -> list[Row]:
        if not parent_ids:
            return []
        rows = connection.execute(
            f"""
            SELECT * FROM {table}
            WHERE {parent_column} IN ({_placeholders(len(parent_ids))})
            ORDER BY {order_column} ASC, created_at ASC
            """,
            list(parent_ids),
        ).fetchall()
        return [dict(row) for row in rows]

    def count_rows(self, *, table: str) -> int:
        self._check_table(table)
        with self._transaction() as connection:
            row = connection.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()
        return int(row["total"]) if row is not None else 0

    def list_recent(self, *, table: str, limit: int | None = None) -> list[Row]:
        """Rows across all owners, newest first."""
        self._check_table(table)
        query = f"SELECT * FROM {table} ORDER BY created_at DESC"
        params: list[object] = []
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._transaction() as connection:
            rows = connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def upsert_profile(
        self,
        *,
        user_id: str,
        email: str,
        full_name: str | None,
        role: str,
        created_at: str,
    ) -> None:
        """Mirror an identity-provider user into `profiles`."""
        with self._transaction() as connection:
            connection.execute(
                """
                INSERT INTO profiles (id, email, full_name, role, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    full_name = excluded.full_name,
                    role = excluded.role
                """,
                (user_id, email, full_name, role, created_at),
            )


def _attach(parents: list[Row], children: list[Row], *, key: str, relation: str) -> None:
    grouped: dict[str, list[Row]] = {}
    for child in children:
        parent_id = child.get(key)
        if parent_id is not None:
            grouped.setdefault(str(parent_id), []).append(child)
    for parent in parents:
        parent[relation] = grouped.get(str(parent["id"]), [])
