"""SQLite-backed accessor for device secrets."""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Final

import anyio

from devicelink.errors import CredentialNotFoundError, StoreUnavailableError
from devicelink.services.envelope.models import DeviceCredential

__all__ = ["CredentialStore"]

_log = logging.getLogger(__name__)


class CredentialStore:
    """Reads ``(new_secret, old_secret)`` for a device.

    ``new_secret`` is the current secret and ``old_secret`` the one it
    replaced; the column names follow the ingestion backend's ``devices``
    table. Fetches open the database read-only and never create it.
    """

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS devices (
        id TEXT PRIMARY KEY,
        description TEXT,
        new_secret TEXT NOT NULL,
        old_secret TEXT
    );
    """

    def __init__(self, db_path: str | Path) -> None:
        self._path = Path(db_path)

    @property
    def path(self) -> Path:
        return self._path

    def initialise(self) -> None:
        if not self._path.parent.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(self._path, isolation_level=None)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot open credential store {self._path}: {exc}") from exc
        try:
            conn.executescript(self._SCHEMA)
        finally:
            conn.close()

    def _connect_readonly(self) -> sqlite3.Connection:
        uri = f"{self._path.resolve().as_uri()}?mode=ro"
        try:
            conn = sqlite3.connect(uri, uri=True)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot open credential store {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    def fetch_credential_sync(self, device_id: str) -> DeviceCredential:
        conn = self._connect_readonly()
        try:
            row = conn.execute(
                "SELECT id, new_secret, old_secret FROM devices WHERE id = ?",
                (device_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"credential lookup failed for '{device_id}': {exc}") from exc
        finally:
            conn.close()
        if row is None or not row["new_secret"]:
            raise CredentialNotFoundError(device_id)
        return DeviceCredential(
            device_id=str(row["id"]),
            current_secret=str(row["new_secret"]),
            previous_secret=row["old_secret"] or None,
        )

    async def fetch_credential(self, device_id: str) -> DeviceCredential:
        """One read per call; results are never cached."""
        return await anyio.to_thread.run_sync(self.fetch_credential_sync, device_id)

    def save_credential(self, credential: DeviceCredential, *, description: str | None = None) -> None:
        self.initialise()
        conn = sqlite3.connect(self._path, isolation_level=None)
        try:
            conn.execute(
                """
                INSERT INTO devices (id, description, new_secret, old_secret)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    description = COALESCE(excluded.description, devices.description),
                    new_secret = excluded.new_secret,
                    old_secret = excluded.old_secret
                """,
                (credential.device_id, description, credential.current_secret, credential.previous_secret),
            )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot save credential for '{credential.device_id}': {exc}") from exc
        finally:
            conn.close()
        _log.info("stored credential for device %s", credential.device_id)

    def list_devices(self) -> list[tuple[str, str | None]]:
        conn = self._connect_readonly()
        try:
            rows = conn.execute("SELECT id, description FROM devices ORDER BY id").fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot list devices: {exc}") from exc
        finally:
            conn.close()
        return [(str(row["id"]), row["description"]) for row in rows]
