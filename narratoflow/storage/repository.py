"""
Repository pattern for data access.

Stores usage documents in a single key/value table. Each row carries a
version number so writers can detect a concurrent update.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ..core.errors import ConcurrentUpdateError
from .db import get_connection


class StateRepository:
    """Key/value store for JSON documents with optimistic concurrency.

    Each call opens its own connection so a failed read or write never
    poisons the next operation.
    """

    def __init__(self, db_path: str = ".narratoflow.db"):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize_schema(self) -> None:
        """Create the usage_state table if it doesn't exist."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS usage_state (
                    key TEXT PRIMARY KEY,
                    document TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def read(self, key: str) -> Optional[Tuple[Dict[str, Any], int]]:
        """Fetch a document and its version.

        Args:
            key: Storage key

        Returns:
            (document, version), or None if nothing is stored under key
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT document, version FROM usage_state WHERE key = ?",
                (key,)
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return json.loads(row[0]), row[1]
        finally:
            conn.close()

    def write(self, key: str, document: Dict[str, Any], expected_version: int) -> int:
        """Replace a document if its stored version still matches.

        ``expected_version`` of 0 means the key must not exist yet.

        Args:
            key: Storage key
            document: Complete document to store
            expected_version: Version the caller read

        Returns:
            The new version number

        Raises:
            ConcurrentUpdateError: If another writer got there first
        """
        new_version = expected_version + 1
        payload = json.dumps(document)
        updated_at = datetime.now().isoformat()

        conn = get_connection(self.db_path)
        try:
            if expected_version == 0:
                cursor = conn.execute("""
                    INSERT OR IGNORE INTO usage_state (key, document, version, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (key, payload, new_version, updated_at))
            else:
                cursor = conn.execute("""
                    UPDATE usage_state
                    SET document = ?, version = ?, updated_at = ?
                    WHERE key = ? AND version = ?
                """, (payload, new_version, updated_at, key, expected_version))
            conn.commit()
        finally:
            conn.close()

        if cursor.rowcount != 1:
            raise ConcurrentUpdateError(
                f"Usage state '{key}' changed since version {expected_version}"
            )
        return new_version
