"""Local mirror of server state for the API client."""

import json
import os
import sqlite3
from typing import Any, Dict, List, Optional

KINDS = ('tasks', 'lists', 'tags', 'notes')


class LocalStore:
    """SQLite-backed mirror of the server collections.

    Rows are stored as JSON documents keyed by (kind, id). Each collection
    is either fresh or stale: a write on the server marks the affected
    collection stale, and the next read re-fetches it.
    """

    def __init__(self, db_path: str = None):
        if db_path is None:
            db_path = os.path.join(os.path.dirname(__file__), 'local_data.db')
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS records (
                    kind TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (kind, id)
                )
            ''')
            conn.execute('''
                CREATE TABLE IF NOT EXISTS freshness (
                    kind TEXT PRIMARY KEY,
                    fresh BOOLEAN NOT NULL DEFAULT 0
                )
            ''')
            conn.commit()

    def clear_all(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute('DELETE FROM records')
            conn.execute('DELETE FROM freshness')
            conn.commit()

    def store(self, kind: str, rows: List[Dict[str, Any]]) -> None:
        """Replace the whole collection and mark it fresh."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute('DELETE FROM records WHERE kind = ?', (kind,))
            conn.executemany(
                'INSERT INTO records (kind, id, data) VALUES (?, ?, ?)',
                [(kind, str(r['id']), json.dumps(r)) for r in rows],
            )
            conn.execute('INSERT OR REPLACE INTO freshness (kind, fresh) VALUES (?, 1)', (kind,))
            conn.commit()

    def load(self, kind: str) -> Optional[List[Dict[str, Any]]]:
        """Return the mirrored collection, or None when it must be re-fetched."""
        if not self.is_fresh(kind):
            return None
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute('SELECT data FROM records WHERE kind = ? ORDER BY rowid', (kind,)).fetchall()
        return [json.loads(r[0]) for r in rows]

    def is_fresh(self, kind: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute('SELECT fresh FROM freshness WHERE kind = ?', (kind,)).fetchone()
        return bool(row and row[0])

    def invalidate(self, *kinds: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.executemany(
                'INSERT OR REPLACE INTO freshness (kind, fresh) VALUES (?, 0)',
                [(k,) for k in (kinds or KINDS)],
            )
            conn.commit()

    def counts(self) -> Dict[str, int]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute('SELECT kind, COUNT(*) FROM records GROUP BY kind').fetchall()
        out = {k: 0 for k in KINDS}
        out.update({k: n for k, n in rows})
        return out
