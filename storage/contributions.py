"""
SQLite store for contribution records.
One row per successfully opened pull request; only the status column changes afterwards.
"""

import sqlite3
import threading
import time
from typing import Optional, Any, Dict, List

from pipeline.models import Contribution, CONTRIBUTION_STATUSES

DB_PATH = None  # can be overridden by caller

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS contributions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    profile_id TEXT NOT NULL,
    owner TEXT NOT NULL,
    repo TEXT NOT NULL,
    fork_owner TEXT NOT NULL,
    branch_name TEXT NOT NULL,
    pr_url TEXT,
    pr_number INTEGER,
    pr_title TEXT,
    pr_body TEXT,
    status TEXT NOT NULL DEFAULT 'open',
    challenge_id TEXT,
    created_at REAL,
    updated_at REAL
);
CREATE INDEX IF NOT EXISTS idx_contributions_profile ON contributions(profile_id);
CREATE INDEX IF NOT EXISTS idx_contributions_status ON contributions(status);
"""

_COLUMNS = (
    'id', 'profile_id', 'owner', 'repo', 'fork_owner', 'branch_name', 'pr_url', 'pr_number',
    'pr_title', 'pr_body', 'status', 'challenge_id', 'created_at', 'updated_at',
)


class ContributionStore:
    def __init__(self, path: Optional[str] = None):
        """Create a store backed by the SQLite file at ``path`` (in-memory when omitted)."""
        self.path = path or DB_PATH or ':memory:'
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(SQL_CREATE)
            self.conn.commit()

    def close(self):
        with self._lock:
            if getattr(self, 'conn', None) is not None:
                try:
                    self.conn.close()
                finally:
                    self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @staticmethod
    def _row_to_contribution(row) -> Contribution:
        return Contribution(**dict(zip(_COLUMNS, row)))

    # noinspection SqlResolve
    def add(self, contribution: Contribution) -> int:
        """Insert a new record and return its generated id (also set on ``contribution``)."""
        now = time.time()
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                'INSERT INTO contributions(profile_id, owner, repo, fork_owner, branch_name, pr_url, pr_number, '
                'pr_title, pr_body, status, challenge_id, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)',
                (
                    contribution.profile_id, contribution.owner, contribution.repo, contribution.fork_owner,
                    contribution.branch_name, contribution.pr_url, contribution.pr_number, contribution.pr_title,
                    contribution.pr_body, contribution.status, contribution.challenge_id, now, now,
                ),
            )
            self.conn.commit()
            new_id = cur.lastrowid
        contribution.id = new_id
        contribution.created_at = now
        contribution.updated_at = now
        return new_id

    # noinspection SqlResolve
    def get(self, contribution_id: int) -> Optional[Contribution]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(f'SELECT {", ".join(_COLUMNS)} FROM contributions WHERE id = ?', (contribution_id,))
            row = cur.fetchone()
        return self._row_to_contribution(row) if row else None

    # noinspection SqlResolve
    def list(self, profile_id: Optional[str] = None, status: Optional[str] = None, limit: int = 100) -> List[Contribution]:
        """Return records newest first, optionally filtered by owner profile and status."""
        clauses = []
        params: List[Any] = []
        if profile_id:
            clauses.append('profile_id = ?')
            params.append(profile_id)
        if status:
            clauses.append('status = ?')
            params.append(status)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ''
        params.append(int(limit))
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(f'SELECT {", ".join(_COLUMNS)} FROM contributions{where} ORDER BY created_at DESC, id DESC LIMIT ?', params)
            rows = cur.fetchall()
        return [self._row_to_contribution(r) for r in rows]

    # noinspection SqlResolve
    def update_status(self, contribution_id: int, status: str) -> bool:
        """Set the status of a record. Returns False if no such record exists."""
        if status not in CONTRIBUTION_STATUSES:
            raise ValueError(f"Invalid contribution status: {status}")
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('UPDATE contributions SET status = ?, updated_at = ? WHERE id = ?', (status, time.time(), contribution_id))
            self.conn.commit()
            return cur.rowcount > 0

    # noinspection SqlResolve
    def delete(self, contribution_id: int) -> int:
        """Delete a record. Returns number of rows deleted."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM contributions WHERE id = ?', (contribution_id,))
            self.conn.commit()
            return cur.rowcount

    # noinspection SqlResolve
    def stats(self, profile_id: Optional[str] = None) -> Dict[str, Any]:
        """Counts per status, merge rate (integer percent) and number of distinct contributors."""
        where = ' WHERE profile_id = ?' if profile_id else ''
        params = (profile_id,) if profile_id else ()
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(f'SELECT status, COUNT(1) FROM contributions{where} GROUP BY status', params)
            counts = {status: int(n or 0) for status, n in cur.fetchall()}
            cur.execute(f'SELECT COUNT(DISTINCT profile_id) FROM contributions{where}', params)
            contributors = cur.fetchone()[0] or 0
        total = sum(counts.values())
        merged = counts.get('merged', 0)
        return {
            'total': total,
            'open': counts.get('open', 0),
            'merged': merged,
            'closed': counts.get('closed', 0),
            'merge_rate': int(round(merged * 100.0 / total)) if total else 0,
            'contributors': int(contributors),
        }


__all__ = ["ContributionStore"]
