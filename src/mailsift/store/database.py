"""SQLite database file shared by the credential store and the message corpus."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from mailsift.exceptions import ConfigurationError

logger = structlog.get_logger()


_SCHEMA_VERSION = 1


class Database:
    """Owns the database path, connections and schema."""

    def __init__(self, db_path: Path) -> None:
        """Create a database handle.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = Path(db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    def initialize(self) -> None:
        """Create or upgrade the schema."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("database_schema_created", version=_SCHEMA_VERSION, path=str(self._db_path))
                return

            if current_version != _SCHEMA_VERSION:
                raise ConfigurationError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, timeout=30)
        try:
            conn.row_factory = sqlite3.Row
            yield conn
        finally:
            conn.close()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS credentials (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                client_id TEXT NOT NULL,
                client_secret TEXT NOT NULL,
                access_token TEXT,
                refresh_token TEXT,
                expiry_iso TEXT,
                active INTEGER NOT NULL DEFAULT 0,
                needs_reauthorization INTEGER NOT NULL DEFAULT 0,
                updated_at_iso TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                thread_id TEXT,
                sender_domain TEXT NOT NULL,
                from_raw TEXT NOT NULL,
                to_raw TEXT NOT NULL,
                subject TEXT NOT NULL,
                date_iso TEXT,
                body TEXT NOT NULL,
                is_read INTEGER NOT NULL,
                is_hidden INTEGER NOT NULL,
                labels_json TEXT NOT NULL,
                raw_headers TEXT,
                recipient_headers_json TEXT NOT NULL,
                extracted_json TEXT NOT NULL,
                recipients_json TEXT NOT NULL,
                updated_at_iso TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_sender_domain
                ON messages(sender_domain);

            CREATE INDEX IF NOT EXISTS idx_messages_date
                ON messages(date_iso);
            """
        )
