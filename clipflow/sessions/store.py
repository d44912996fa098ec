import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence

from clipflow.exceptions import SegmentIndexError, SessionNotFoundError, SessionValidationError, StorageUpdateError
from clipflow.orchestration.status import Status, status_from_record, status_to_record
from clipflow.sessions.models import Segment, Session, SessionSummary
from clipflow.utils.duration import MAX_CLIP_DURATION, MIN_CLIP_DURATION

MEMORY_DB = ":memory:"


def _repo_root() -> Path:
    # clipflow/sessions/store.py -> clipflow/sessions -> clipflow -> repo root
    return Path(__file__).resolve().parents[2]


def default_db_path() -> Path:
    return _repo_root() / "data" / "sessions.db"


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
  session_id INTEGER PRIMARY KEY AUTOINCREMENT,
  owner TEXT,
  original_prompt TEXT NOT NULL,
  per_clip_duration INTEGER NOT NULL,
  created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_owner ON sessions(owner, created_at);

CREATE TABLE IF NOT EXISTS segments (
  session_id INTEGER NOT NULL,
  segment_index INTEGER NOT NULL,
  prompt TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'queued',   -- queued/generating/completed/failed
  failure_reason TEXT,
  updated_at REAL NOT NULL,
  PRIMARY KEY(session_id, segment_index),
  FOREIGN KEY(session_id) REFERENCES sessions(session_id)
);
"""


class SessionStore:
    """
    SQLite-backed session records.

    One connection shared across threads (the orchestrator calls in through
    asyncio.to_thread); a lock serialises access to it.
    """

    def __init__(self, conn: sqlite3.Connection, db_path: Optional[Path] = None):
        self.conn = conn
        self.db_path = db_path
        self._lock = threading.RLock()

    @classmethod
    def open(cls, db_path: Optional[os.PathLike] = None) -> "SessionStore":
        if db_path is not None and str(db_path) == MEMORY_DB:
            conn = sqlite3.connect(MEMORY_DB, isolation_level=None, check_same_thread=False)
            path = None
        else:
            path = Path(db_path) if db_path is not None else default_db_path()
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")

        store = cls(conn, db_path=path)
        store._ensure_schema()
        return store

    def close(self) -> None:
        try:
            self.conn.close()
        except sqlite3.Error:
            pass

    def _ensure_schema(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?)", ("schema_version", "1"))

    def _now(self) -> float:
        return time.time()

    # --- sessions ---
    def create_session(
        self,
        original_prompt: str,
        segment_prompts: Sequence[str],
        per_clip_duration: int,
        owner: Optional[str] = None,
    ) -> int:
        if not (original_prompt or "").strip():
            raise SessionValidationError("Original prompt cannot be empty")
        if not segment_prompts:
            raise SessionValidationError("Segment prompts cannot be empty")
        if not MIN_CLIP_DURATION <= int(per_clip_duration) <= MAX_CLIP_DURATION:
            raise SessionValidationError(
                f"Per-clip duration must be between {MIN_CLIP_DURATION} and {MAX_CLIP_DURATION} seconds"
            )

        now = self._now()
        with self._lock:
            self.conn.execute("BEGIN")
            try:
                cur = self.conn.execute(
                    "INSERT INTO sessions(owner, original_prompt, per_clip_duration, created_at) VALUES(?, ?, ?, ?)",
                    (owner, original_prompt, int(per_clip_duration), now),
                )
                session_id = int(cur.lastrowid)
                self.conn.executemany(
                    "INSERT INTO segments(session_id, segment_index, prompt, status, updated_at) VALUES(?, ?, ?, 'queued', ?)",
                    [(session_id, i, p, now) for i, p in enumerate(segment_prompts)],
                )
                self.conn.execute("COMMIT")
            except sqlite3.Error:
                self.conn.execute("ROLLBACK")
                raise
        return session_id

    def _session_row(self, session_id: int) -> sqlite3.Row:
        row = self.conn.execute("SELECT * FROM sessions WHERE session_id=?", (session_id,)).fetchone()
        if row is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return row

    def get_session(self, session_id: int) -> Session:
        with self._lock:
            row = self._session_row(session_id)
            seg_rows = self.conn.execute(
                "SELECT * FROM segments WHERE session_id=? ORDER BY segment_index ASC",
                (session_id,),
            ).fetchall()
        segments = [
            Segment(
                index=r["segment_index"],
                prompt=r["prompt"],
                status=status_from_record(r["status"], r["failure_reason"]),
            )
            for r in seg_rows
        ]
        return Session(
            session_id=row["session_id"],
            owner=row["owner"],
            original_prompt=row["original_prompt"],
            segment_prompts=[s.prompt for s in segments],
            per_clip_duration=row["per_clip_duration"],
            created_at=row["created_at"],
            segments=segments,
        )

    def update_segment_status(self, session_id: int, segment_index: int, status: Status) -> None:
        record = status_to_record(status)
        with self._lock:
            self._session_row(session_id)
            try:
                cur = self.conn.execute(
                    "UPDATE segments SET status=?, failure_reason=?, updated_at=? WHERE session_id=? AND segment_index=?",
                    (record["kind"], record["reason"], self._now(), session_id, int(segment_index)),
                )
            except sqlite3.Error as exc:
                raise StorageUpdateError(f"Could not update segment {segment_index} of session {session_id}: {exc}") from exc
            if cur.rowcount == 0:
                raise SegmentIndexError(f"Session {session_id} has no segment {segment_index}")

    def get_user_sessions(self, owner: str) -> List[SessionSummary]:
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT s.session_id, s.owner, s.original_prompt, s.created_at,
                       COUNT(g.segment_index) AS segment_count
                FROM sessions s LEFT JOIN segments g ON g.session_id = s.session_id
                WHERE s.owner = ?
                GROUP BY s.session_id
                ORDER BY s.created_at DESC, s.session_id DESC
                """,
                (owner,),
            ).fetchall()
        return [
            SessionSummary(
                session_id=r["session_id"],
                owner=r["owner"],
                original_prompt=r["original_prompt"],
                created_at=r["created_at"],
                segment_count=r["segment_count"],
            )
            for r in rows
        ]
