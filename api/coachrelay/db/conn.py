import sqlite3


def get_conn(path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with Row factory."""
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    return conn


def ensure_schema(path: str) -> None:
    """Create the key-value table if it does not exist yet."""
    conn = get_conn(path)
    try:
        conn.execute(
            """CREATE TABLE IF NOT EXISTS kv_entry (
                   namespace  TEXT NOT NULL,
                   key        TEXT NOT NULL,
                   value      TEXT NOT NULL,
                   updated_at TEXT NOT NULL,
                   PRIMARY KEY (namespace, key)
               )"""
        )
        conn.commit()
    finally:
        conn.close()
