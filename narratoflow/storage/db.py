"""
Database connection management.

Provides SQLite connection for usage-state persistence.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = ".narratoflow.db") -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    The parent directory is created on demand so a fresh install can point
    ``db_path`` anywhere under the user's home.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with a busy timeout for concurrent writers
    """
    path = Path(db_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path), timeout=5.0)
