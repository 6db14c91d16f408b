"""
SQLite access for the analysis ledger.

Connections are short-lived: each repository call opens one, does its
work and closes it, so API worker threads never share a connection.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "forex_radar.db"

# Seconds a writer waits on a locked database before failing
BUSY_TIMEOUT_SECONDS = 5.0


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a connection to the ledger database, creating its directory if needed.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection that waits on concurrent writers instead of failing
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS)
