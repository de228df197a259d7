"""Credential Store: OAuth client registrations and their token pairs."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import structlog

from mailsift.models import Credential
from mailsift.store.database import Database

logger = structlog.get_logger()


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CredentialRepository:
    """Get/set record store for credentials keyed by the single active flag."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def add(self, credential: Credential, *, activate: bool = True) -> Credential:
        """Insert a credential, optionally making it the active one."""

        with self._db.connect() as conn:
            if activate:
                conn.execute("UPDATE credentials SET active = 0")
            cursor = conn.execute(
                """
                INSERT INTO credentials (
                    client_id, client_secret, access_token, refresh_token, expiry_iso,
                    active, needs_reauthorization, updated_at_iso
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    credential.client_id,
                    credential.client_secret,
                    credential.access_token,
                    credential.refresh_token,
                    _iso(credential.expiry),
                    1 if activate else 0,
                    1 if credential.needs_reauthorization else 0,
                    _now_iso(),
                ),
            )
            conn.commit()
            new_id = cursor.lastrowid

        logger.info("credential_added", credential_id=new_id, active=activate)
        return credential.model_copy(update={"id": new_id, "active": activate})

    def get(self, credential_id: int) -> Credential | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM credentials WHERE id = ?", (credential_id,)).fetchone()
        return self._row_to_credential(row) if row else None

    def get_active(self) -> Credential | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM credentials WHERE active = 1 ORDER BY id LIMIT 1"
            ).fetchone()
        return self._row_to_credential(row) if row else None

    def list_all(self) -> list[Credential]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM credentials ORDER BY id").fetchall()
        return [self._row_to_credential(row) for row in rows]

    def save(self, credential: Credential) -> None:
        """Persist every mutable field of an existing credential."""

        if credential.id is None:
            raise ValueError("Cannot save a credential without an id; use add()")

        with self._db.connect() as conn:
            conn.execute(
                """
                UPDATE credentials SET
                    client_id = ?,
                    client_secret = ?,
                    access_token = ?,
                    refresh_token = ?,
                    expiry_iso = ?,
                    needs_reauthorization = ?,
                    updated_at_iso = ?
                WHERE id = ?
                """,
                (
                    credential.client_id,
                    credential.client_secret,
                    credential.access_token,
                    credential.refresh_token,
                    _iso(credential.expiry),
                    1 if credential.needs_reauthorization else 0,
                    _now_iso(),
                    credential.id,
                ),
            )
            conn.commit()

    def update_token(self, credential_id: int, access_token: str, expiry: datetime) -> None:
        """Atomically store a refreshed access token and its expiry."""

        with self._db.connect() as conn:
            conn.execute(
                """
                UPDATE credentials
                SET access_token = ?, expiry_iso = ?, needs_reauthorization = 0, updated_at_iso = ?
                WHERE id = ?
                """,
                (access_token, _iso(expiry), _now_iso(), credential_id),
            )
            conn.commit()

    def mark_reauthorization_required(self, credential_id: int) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                UPDATE credentials
                SET needs_reauthorization = 1, access_token = NULL, updated_at_iso = ?
                WHERE id = ?
                """,
                (_now_iso(), credential_id),
            )
            conn.commit()
        logger.warning("credential_marked_for_reauthorization", credential_id=credential_id)

    def activate(self, credential_id: int) -> bool:
        """Make one credential the active one. Returns False if it does not exist."""

        with self._db.connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM credentials WHERE id = ?", (credential_id,)
            ).fetchone()
            if exists is None:
                return False
            conn.execute("UPDATE credentials SET active = CASE WHEN id = ? THEN 1 ELSE 0 END", (credential_id,))
            conn.commit()
        logger.info("credential_activated", credential_id=credential_id)
        return True

    def delete(self, credential_id: int) -> bool:
        with self._db.connect() as conn:
            cursor = conn.execute("DELETE FROM credentials WHERE id = ?", (credential_id,))
            conn.commit()
        return cursor.rowcount > 0

    def _row_to_credential(self, row: sqlite3.Row) -> Credential:
        expiry = datetime.fromisoformat(row["expiry_iso"]) if row["expiry_iso"] else None
        return Credential(
            id=row["id"],
            client_id=row["client_id"],
            client_secret=row["client_secret"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expiry=expiry,
            active=bool(row["active"]),
            needs_reauthorization=bool(row["needs_reauthorization"]),
        )
