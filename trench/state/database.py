"""SQLite-backed store for repos, worktrees, events, tags and session state."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import CrossRepoEventError, MigrationError, RecordNotFoundError, StateError
from .migrations import LATEST_VERSION, MIGRATIONS
from .models import Event, Repo, Worktree, WorktreeUpdate

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECS = 5.0

_WORKTREE_COLUMNS = (
    "id, repo_id, name, branch, path, base_branch, managed, "
    "adopted_at, last_accessed, removed_at, created_at"
)


def _now() -> int:
    return int(time.time())


def _connect(target: str) -> sqlite3.Connection:
    conn = sqlite3.connect(target, timeout=BUSY_TIMEOUT_SECS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute(f"PRAGMA busy_timeout={int(BUSY_TIMEOUT_SECS * 1000)}")
    return conn


def _user_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def _migrate(conn: sqlite3.Connection) -> None:
    """Apply every migration newer than ``user_version``, one transaction each."""
    current = _user_version(conn)
    for version, script in enumerate(MIGRATIONS, start=1):
        if version <= current:
            continue
        try:
            conn.executescript(f"BEGIN;\n{script}\nPRAGMA user_version = {version};\nCOMMIT;")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            raise MigrationError(f"migration {version:03d} failed: {e}") from e
        logger.debug("applied migration %03d", version)


def _backup_path_for(path: Path) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    candidate = path.with_name(f"{path.name}.bak-{stamp}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak-{stamp}-{counter}")
        counter += 1
    return candidate


def _row_to_repo(row: sqlite3.Row) -> Repo:
    return Repo(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        default_base=row["default_base"],
        created_at=row["created_at"],
    )


def _row_to_worktree(row: sqlite3.Row) -> Worktree:
    return Worktree(
        id=row["id"],
        repo_id=row["repo_id"],
        name=row["name"],
        branch=row["branch"],
        path=row["path"],
        base_branch=row["base_branch"],
        managed=bool(row["managed"]),
        adopted_at=row["adopted_at"],
        last_accessed=row["last_accessed"],
        removed_at=row["removed_at"],
        created_at=row["created_at"],
    )


def _row_to_event(row: sqlite3.Row) -> Event:
    payload = row["payload"]
    return Event(
        id=row["id"],
        repo_id=row["repo_id"],
        worktree_id=row["worktree_id"],
        event_type=row["event_type"],
        payload=json.loads(payload) if payload is not None else None,
        created_at=row["created_at"],
    )


class Database:
    """One open handle on the trench store.

    Use ``Database.open(path)`` for the on-disk store or
    ``Database.open_in_memory()`` in tests. The handle is a context manager
    and closes its connection on exit.
    """

    def __init__(self, conn: sqlite3.Connection, path: Path | None = None):
        self._conn = conn
        self.path = path
        self.backup_path: Path | None = None

    @classmethod
    def open(cls, path: Path) -> Database:
        """Open (creating if needed) and migrate the store at ``path``.

        A store written by a newer trench, whose schema version is past the
        migrations known here, is moved aside to ``<name>.bak-<timestamp>``
        and replaced by a fresh one.

        Raises:
            MigrationError: A migration could not be applied.
        """
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)

        conn = _connect(str(path))
        backup_path = None
        version = _user_version(conn)
        if version > LATEST_VERSION:
            conn.close()
            backup_path = _backup_path_for(path)
            path.rename(backup_path)
            for suffix in ("-wal", "-shm"):
                sidecar = path.with_name(path.name + suffix)
                if sidecar.exists():
                    sidecar.rename(backup_path.with_name(backup_path.name + suffix))
            logger.warning(
                "Database schema version %d is newer than supported version %d; "
                "moved it to %s and created a fresh database",
                version,
                LATEST_VERSION,
                backup_path,
            )
            conn = _connect(str(path))

        try:
            _migrate(conn)
        except MigrationError:
            conn.close()
            raise

        db = cls(conn, path)
        db.backup_path = backup_path
        return db

    @classmethod
    def open_in_memory(cls) -> Database:
        conn = _connect(":memory:")
        _migrate(conn)
        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def schema_version(self) -> int:
        return _user_version(self._conn)

    def _fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        return self._conn.execute(sql, params).fetchone()

    # ------------------------------------------------------------------
    # Repos
    # ------------------------------------------------------------------

    def insert_repo(self, name: str, path: str | Path, default_base: str | None = None) -> Repo:
        now = _now()
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO repos (name, path, default_base, created_at) VALUES (?, ?, ?, ?)",
                    (name, str(path), default_base, now),
                )
        except sqlite3.IntegrityError as e:
            raise StateError(f"repository already tracked: {path}") from e
        return Repo(
            id=cursor.lastrowid,
            name=name,
            path=str(path),
            default_base=default_base,
            created_at=now,
        )

    def get_repo(self, repo_id: int) -> Repo | None:
        row = self._fetchone("SELECT * FROM repos WHERE id = ?", (repo_id,))
        return _row_to_repo(row) if row else None

    def get_repo_by_path(self, path: str | Path) -> Repo | None:
        row = self._fetchone("SELECT * FROM repos WHERE path = ?", (str(path),))
        return _row_to_repo(row) if row else None

    # ------------------------------------------------------------------
    # Worktrees
    # ------------------------------------------------------------------

    def insert_worktree(
        self,
        repo_id: int,
        name: str,
        branch: str,
        path: str | Path,
        base_branch: str | None = None,
        managed: bool = True,
        adopted_at: int | None = None,
    ) -> Worktree:
        now = _now()
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO worktrees "
                    "(repo_id, name, branch, path, base_branch, managed, adopted_at, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (repo_id, name, branch, str(path), base_branch, int(managed), adopted_at, now),
                )
        except sqlite3.IntegrityError as e:
            if self.get_repo(repo_id) is None:
                raise RecordNotFoundError("repos", repo_id) from e
            raise StateError(f"worktree path already tracked: {path}") from e
        return Worktree(
            id=cursor.lastrowid,
            repo_id=repo_id,
            name=name,
            branch=branch,
            path=str(path),
            base_branch=base_branch,
            managed=managed,
            adopted_at=adopted_at,
            last_accessed=None,
            removed_at=None,
            created_at=now,
        )

    def get_worktree(self, worktree_id: int) -> Worktree | None:
        """Fetch a worktree by id, including soft-deleted rows."""
        row = self._fetchone(
            f"SELECT {_WORKTREE_COLUMNS} FROM worktrees WHERE id = ?", (worktree_id,)
        )
        return _row_to_worktree(row) if row else None

    def get_worktree_by_path(self, path: str | Path) -> Worktree | None:
        row = self._fetchone(
            f"SELECT {_WORKTREE_COLUMNS} FROM worktrees WHERE path = ?", (str(path),)
        )
        return _row_to_worktree(row) if row else None

    def list_worktrees(self, repo_id: int) -> list[Worktree]:
        """Active worktrees of a repo, oldest first."""
        rows = self._conn.execute(
            f"SELECT {_WORKTREE_COLUMNS} FROM worktrees "
            "WHERE repo_id = ? AND removed_at IS NULL "
            "ORDER BY created_at, id",
            (repo_id,),
        ).fetchall()
        return [_row_to_worktree(row) for row in rows]

    def find_worktree_by_identifier(self, repo_id: int, identifier: str) -> Worktree | None:
        """Find an active worktree whose name or branch equals ``identifier``.

        A name match wins over a branch match.
        """
        row = self._fetchone(
            f"SELECT {_WORKTREE_COLUMNS} FROM worktrees "
            "WHERE repo_id = ? AND removed_at IS NULL AND (name = ? OR branch = ?) "
            "ORDER BY (name = ?) DESC, created_at, id LIMIT 1",
            (repo_id, identifier, identifier, identifier),
        )
        return _row_to_worktree(row) if row else None

    def list_worktrees_by_tag(self, repo_id: int, tag: str) -> list[Worktree]:
        rows = self._conn.execute(
            "SELECT w.id, w.repo_id, w.name, w.branch, w.path, w.base_branch, w.managed, "
            "w.adopted_at, w.last_accessed, w.removed_at, w.created_at "
            "FROM worktrees w JOIN tags t ON t.worktree_id = w.id "
            "WHERE w.repo_id = ? AND w.removed_at IS NULL AND t.name = ? "
            "ORDER BY w.created_at, w.id",
            (repo_id, tag),
        ).fetchall()
        return [_row_to_worktree(row) for row in rows]

    def update_worktree(self, worktree_id: int, update: WorktreeUpdate) -> Worktree:
        """Apply a partial update and return the resulting row.

        Raises:
            RecordNotFoundError: No worktree has ``worktree_id``.
            ValueError: ``removed_at`` was set to None.
        """
        changes = update.changes()
        if "removed_at" in changes and changes["removed_at"] is None:
            raise ValueError("removed_at cannot be cleared once set")

        if changes:
            assignments = []
            params: list[Any] = []
            for column, value in changes.items():
                if column == "removed_at":
                    # First stamp wins
                    assignments.append("removed_at = COALESCE(removed_at, ?)")
                else:
                    assignments.append(f"{column} = ?")
                params.append(int(value) if column == "managed" else value)
            params.append(worktree_id)
            with self._conn:
                cursor = self._conn.execute(
                    f"UPDATE worktrees SET {', '.join(assignments)} WHERE id = ?",
                    tuple(params),
                )
            if cursor.rowcount == 0:
                raise RecordNotFoundError("worktrees", worktree_id)

        worktree = self.get_worktree(worktree_id)
        if worktree is None:
            raise RecordNotFoundError("worktrees", worktree_id)
        return worktree

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def insert_event(
        self,
        repo_id: int,
        worktree_id: int | None,
        event_type: str,
        payload: dict[str, Any] | None = None,
    ) -> Event:
        """Append an event.

        Raises:
            RecordNotFoundError: ``worktree_id`` does not exist.
            CrossRepoEventError: The worktree belongs to another repo.
        """
        if worktree_id is not None:
            owner = self._fetchone("SELECT repo_id FROM worktrees WHERE id = ?", (worktree_id,))
            if owner is None:
                raise RecordNotFoundError("worktrees", worktree_id)
            if owner["repo_id"] != repo_id:
                raise CrossRepoEventError(repo_id, worktree_id)

        now = _now()
        encoded = json.dumps(payload) if payload is not None else None
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO events (repo_id, worktree_id, event_type, payload, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (repo_id, worktree_id, event_type, encoded, now),
                )
        except sqlite3.IntegrityError as e:
            if worktree_id is not None and "does not match" in str(e):
                raise CrossRepoEventError(repo_id, worktree_id) from e
            raise StateError(str(e)) from e
        return Event(
            id=cursor.lastrowid,
            repo_id=repo_id,
            worktree_id=worktree_id,
            event_type=event_type,
            payload=payload,
            created_at=now,
        )

    def count_events(
        self,
        repo_id: int,
        worktree_id: int | None = None,
        event_type: str | None = None,
    ) -> int:
        sql = "SELECT COUNT(*) FROM events WHERE repo_id = ?"
        params: list[Any] = [repo_id]
        if worktree_id is not None:
            sql += " AND worktree_id = ?"
            params.append(worktree_id)
        if event_type is not None:
            sql += " AND event_type = ?"
            params.append(event_type)
        return self._conn.execute(sql, tuple(params)).fetchone()[0]

    def list_events(
        self,
        repo_id: int,
        worktree_id: int | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """Events of a repo (optionally one worktree), newest first."""
        sql = "SELECT * FROM events WHERE repo_id = ?"
        params: list[Any] = [repo_id]
        if worktree_id is not None:
            sql += " AND worktree_id = ?"
            params.append(worktree_id)
        sql += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(sql, tuple(params)).fetchall()
        return [_row_to_event(row) for row in rows]

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def add_tag(self, worktree_id: int, name: str) -> None:
        """Attach a tag; adding one that is already present is a no-op."""
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR IGNORE INTO tags (worktree_id, name, created_at) VALUES (?, ?, ?)",
                    (worktree_id, name, _now()),
                )
        except sqlite3.IntegrityError as e:
            raise RecordNotFoundError("worktrees", worktree_id) from e

    def remove_tag(self, worktree_id: int, name: str) -> bool:
        """Detach a tag. Returns whether it was present."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM tags WHERE worktree_id = ? AND name = ?", (worktree_id, name)
            )
        return cursor.rowcount > 0

    def list_tags(self, worktree_id: int) -> list[str]:
        rows = self._conn.execute(
            "SELECT name FROM tags WHERE worktree_id = ? ORDER BY name", (worktree_id,)
        ).fetchall()
        return [row["name"] for row in rows]

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def set_session(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO session (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at",
                (key, value, _now()),
            )

    def get_session(self, key: str) -> str | None:
        row = self._fetchone("SELECT value FROM session WHERE key = ?", (key,))
        return row["value"] if row else None
