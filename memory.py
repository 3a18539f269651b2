"""SQLite persistence: the internal event timeline and namespaced JSON documents."""

import sqlite3
import threading

import config

_local = threading.local()

SCHEMA = """
CREATE TABLE IF NOT EXISTS timeline (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts DATETIME DEFAULT (datetime('now')),
    event TEXT NOT NULL,
    details TEXT
);
CREATE INDEX IF NOT EXISTS timeline_event ON timeline (event);

CREATE TABLE IF NOT EXISTS documents (
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    body TEXT NOT NULL,
    updated_at DATETIME DEFAULT (datetime('now')),
    PRIMARY KEY (namespace, key)
);
"""


def _get_conn():
    """This thread's connection, reopened whenever config.DB_PATH moves."""
    conn = getattr(_local, "conn", None)
    if conn is None or _local.path != config.DB_PATH:
        conn = sqlite3.connect(config.DB_PATH)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        conn.commit()
        _local.conn, _local.path = conn, config.DB_PATH
    return conn


def init_db():
    _get_conn()


def close():
    """Drop this thread's connection."""
    conn = getattr(_local, "conn", None)
    if conn is not None:
        conn.close()
    _local.conn = None


# --- Timeline ---

def log_event(event, details=None):
    conn = _get_conn()
    with conn:
        conn.execute("INSERT INTO timeline (event, details) VALUES (?, ?)", (event, details))


def get_timeline(limit=30, event=None):
    """Newest `limit` events (optionally one kind), returned oldest first."""
    sql = "SELECT ts, event, details FROM timeline"
    params = []
    if event:
        sql += " WHERE event = ?"
        params.append(event)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    rows = _get_conn().execute(sql, params).fetchall()
    return rows[::-1]


# --- Documents ---

def doc_put(namespace, key, body):
    conn = _get_conn()
    with conn:
        conn.execute(
            "INSERT INTO documents (namespace, key, body) VALUES (?, ?, ?) "
            "ON CONFLICT(namespace, key) DO UPDATE SET "
            "body = excluded.body, updated_at = datetime('now')",
            (namespace, key, body),
        )


def doc_get(namespace, key):
    row = _get_conn().execute(
        "SELECT body FROM documents WHERE namespace = ? AND key = ?", (namespace, key),
    ).fetchone()
    return row["body"] if row else None


def doc_delete(namespace, key):
    """Returns True if a document was removed."""
    conn = _get_conn()
    with conn:
        cur = conn.execute(
            "DELETE FROM documents WHERE namespace = ? AND key = ?", (namespace, key),
        )
    return cur.rowcount > 0


def doc_keys(namespace):
    rows = _get_conn().execute(
        "SELECT key FROM documents WHERE namespace = ? ORDER BY key", (namespace,),
    ).fetchall()
    return [r["key"] for r in rows]
