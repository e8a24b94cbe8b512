"""
SQLite connection handling for the usage account and session archive.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "meetingsync_billing.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a connection, creating the database directory if needed.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection that waits up to 5 seconds on a locked database
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path), timeout=5.0)
