"""sqlite3-backed table of active votes.

One row per user: ``user_id`` (text, primary key) and ``expires_at``
(epoch milliseconds). Every call opens its own connection and commits
before returning, so each operation is atomic and survives restarts.
"""
import sqlite3
import time

from vote_config import DEFAULT_DB_FILE, VOTE_DURATION_MS
from vote_log import debug_log


class StorageError(Exception):
    """The vote database could not be read or written."""


def now_ms():
    return int(time.time() * 1000)


class VoteStore:
    def __init__(self, db_file=DEFAULT_DB_FILE, duration_ms=VOTE_DURATION_MS):
        self.db_file = db_file
        self.duration_ms = duration_ms
        self.init()

    def init(self):
        debug_log(f"Initializing vote database at {self.db_file}...", "INFO")
        self._query('''CREATE TABLE IF NOT EXISTS votes (
            user_id    TEXT    PRIMARY KEY,
            expires_at INTEGER NOT NULL
        )''')
        debug_log("Vote database ready", "SUCCESS")

    def _query(self, query, params=(), fetch=False):
        debug_log(f"DB: {query} | {params}", "DEBUG")
        try:
            conn = sqlite3.connect(self.db_file)
            try:
                c = conn.cursor()
                c.execute(query, params)
                conn.commit()
                return c.fetchall() if fetch else None
            finally:
                conn.close()
        except sqlite3.Error as e:
            debug_log(f"DB error: {e} | query={query} | params={params}", "ERROR")
            raise StorageError(str(e)) from e

    def upsert(self, user_id, now):
        """Record a vote at ``now`` and return the new expiry."""
        expires_at = now + self.duration_ms
        self._query(
            "INSERT INTO votes (user_id, expires_at) VALUES (?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET expires_at = excluded.expires_at",
            (str(user_id), expires_at))
        return expires_at

    def delete(self, user_id):
        self._query("DELETE FROM votes WHERE user_id = ?", (str(user_id),))

    def list_expired(self, now):
        rows = self._query("SELECT user_id FROM votes WHERE expires_at <= ?", (now,), fetch=True)
        return [row[0] for row in rows]

    def get_expiry(self, user_id):
        rows = self._query("SELECT expires_at FROM votes WHERE user_id = ?", (str(user_id),), fetch=True)
        return rows[0][0] if rows else None

    def count(self):
        return self._query("SELECT COUNT(*) FROM votes", fetch=True)[0][0]
