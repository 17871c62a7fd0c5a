"""SQLite persistence for jobs, post links and personality state."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator
from uuid import uuid4

from podcast_producer.constants import MAX_PROCESSING_SECONDS, RECENT_JOBS_LIMIT
from podcast_producer.errors import ClaimLostError, PodcastError
from podcast_producer.models import Job, JobStatus, PersonalityState, SegmentMeta
from podcast_producer.personality import default_state

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS podcast_jobs (
    id TEXT PRIMARY KEY,
    script TEXT NOT NULL,
    host_voice_id TEXT NOT NULL,
    guest_voice_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    model TEXT,
    title TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    progress INTEGER NOT NULL DEFAULT 0,
    current_line INTEGER NOT NULL DEFAULT 0,
    total_lines INTEGER NOT NULL DEFAULT 0,
    segment_urls TEXT NOT NULL DEFAULT '[]',
    segment_metadata TEXT NOT NULL DEFAULT '[]',
    audio_url TEXT,
    duration_seconds REAL,
    error_message TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    post_id TEXT,
    source_locale TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_podcast_jobs_status ON podcast_jobs (status, created_at);

CREATE TABLE IF NOT EXISTS post_podcasts (
    post_id TEXT NOT NULL,
    locale TEXT NOT NULL,
    status TEXT NOT NULL,
    audio_url TEXT,
    duration_seconds REAL,
    script_content TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (post_id, locale)
);

CREATE TABLE IF NOT EXISTS podcast_personality_state (
    locale TEXT PRIMARY KEY,
    episode_count INTEGER NOT NULL DEFAULT 0,
    relationship_phase TEXT NOT NULL DEFAULT 'strangers',
    traits TEXT NOT NULL,
    paused INTEGER NOT NULL DEFAULT 0,
    inside_joke_count INTEGER NOT NULL DEFAULT 0,
    host_name TEXT,
    memorable_moments TEXT NOT NULL DEFAULT '[]',
    last_episode_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def utc_now(offset_seconds: float = 0) -> str:
    moment = datetime.now(timezone.utc) + timedelta(seconds=offset_seconds)
    return moment.isoformat(timespec="microseconds")


class Database:
    """Opens a connection per operation (safe across worker threads)."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from the start."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()


def _row_to_job(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        script=row["script"],
        host_voice_id=row["host_voice_id"],
        guest_voice_id=row["guest_voice_id"],
        provider=row["provider"],
        model=row["model"],
        title=row["title"],
        status=JobStatus(row["status"]),
        progress=row["progress"],
        current_line=row["current_line"],
        total_lines=row["total_lines"],
        segment_urls=json.loads(row["segment_urls"]),
        segment_metadata=[SegmentMeta.from_dict(m) for m in json.loads(row["segment_metadata"])],
        audio_url=row["audio_url"],
        duration_seconds=row["duration_seconds"],
        error_message=row["error_message"],
        attempts=row["attempts"],
        post_id=row["post_id"],
        source_locale=row["source_locale"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
    )


class JobStore:
    """Job rows. Status only ever moves pending → processing → completed|failed."""

    def __init__(self, db: Database):
        self.db = db

    def create(
        self,
        script: str,
        host_voice_id: str,
        guest_voice_id: str,
        provider: str,
        total_lines: int,
        model: str | None = None,
        title: str | None = None,
        post_id: str | None = None,
        source_locale: str | None = None,
    ) -> Job:
        job_id = str(uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                """INSERT INTO podcast_jobs (id, script, host_voice_id, guest_voice_id, provider,
                       model, title, status, total_lines, post_id, source_locale, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (job_id, script, host_voice_id, guest_voice_id, provider, model, title,
                 JobStatus.PENDING.value, total_lines, post_id, source_locale, utc_now()),
            )
        return self.get(job_id)

    def get(self, job_id: str) -> Job | None:
        rows = self.db.query("SELECT * FROM podcast_jobs WHERE id = ?", (job_id,))
        return _row_to_job(rows[0]) if rows else None

    def list_recent(self, limit: int = RECENT_JOBS_LIMIT) -> list[Job]:
        rows = self.db.query(
            "SELECT * FROM podcast_jobs ORDER BY created_at DESC, rowid DESC LIMIT ?", (limit,)
        )
        return [_row_to_job(r) for r in rows]

    def peek_pending(self) -> Job | None:
        """The job an id-less claim would take next, without claiming it."""
        rows = self.db.query(
            "SELECT * FROM podcast_jobs WHERE status = ? ORDER BY created_at, rowid LIMIT 1",
            (JobStatus.PENDING.value,),
        )
        return _row_to_job(rows[0]) if rows else None

    def claim(self, job_id: str | None = None, stale_after: float = MAX_PROCESSING_SECONDS) -> Job | None:
        """Atomically move one job to processing and count the attempt.

        By id: the job must be pending, or processing with a started_at older
        than ``stale_after`` (its invocation is past its budget). Without id:
        the oldest pending job. Returns None if nothing matched.

        The returned job's ``attempts`` is the claim token: every later write
        for this invocation must present it.
        """
        stale_before = utc_now(-stale_after)
        with self.db.transaction() as conn:
            if job_id:
                row = conn.execute(
                    """SELECT id, status, started_at FROM podcast_jobs WHERE id = ?
                       AND (status = ? OR (status = ? AND started_at < ?))""",
                    (job_id, JobStatus.PENDING.value, JobStatus.PROCESSING.value, stale_before),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT id, status FROM podcast_jobs WHERE status = ? ORDER BY created_at, rowid LIMIT 1",
                    (JobStatus.PENDING.value,),
                ).fetchone()
            if row is None:
                return None
            if row["status"] == JobStatus.PROCESSING.value:
                logger.warning("Reclaiming stale job %s (started %s)", row["id"], row["started_at"])
            conn.execute(
                """UPDATE podcast_jobs SET status = ?, started_at = ?, attempts = attempts + 1,
                       progress = 0, current_line = 0, segment_urls = '[]' WHERE id = ?""",
                (JobStatus.PROCESSING.value, utc_now(), row["id"]),
            )
        return self.get(row["id"])

    def save_checkpoint(self, job_id: str, attempt: int, progress: int, current_line: int,
                        segment_urls: list[str]) -> None:
        self._update_processing(
            job_id, attempt,
            "progress = ?, current_line = ?, segment_urls = ?",
            (progress, current_line, json.dumps(segment_urls)),
        )

    def complete(
        self,
        job_id: str,
        attempt: int,
        audio_url: str,
        duration_seconds: float,
        segment_urls: list[str],
        segment_metadata: list[SegmentMeta],
    ) -> Job:
        self._update_processing(
            job_id, attempt,
            """status = ?, progress = 100, audio_url = ?, duration_seconds = ?,
               segment_urls = ?, segment_metadata = ?, completed_at = ?""",
            (JobStatus.COMPLETED.value, audio_url, duration_seconds, json.dumps(segment_urls),
             json.dumps([m.to_dict() for m in segment_metadata]), utc_now()),
        )
        return self.get(job_id)

    def fail(self, job_id: str, attempt: int, error_message: str) -> Job:
        self._update_processing(
            job_id, attempt, "status = ?, error_message = ?", (JobStatus.FAILED.value, error_message)
        )
        return self.get(job_id)

    def _update_processing(self, job_id: str, attempt: int, assignments: str, params: tuple) -> None:
        with self.db.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE podcast_jobs SET {assignments} WHERE id = ? AND status = ? AND attempts = ?",
                (*params, job_id, JobStatus.PROCESSING.value, attempt),
            )
            if cursor.rowcount:
                return
            row = conn.execute(
                "SELECT status, attempts FROM podcast_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        if row is not None and row["attempts"] != attempt:
            raise ClaimLostError(f"Job {job_id} was reclaimed by attempt {row['attempts']}")
        raise PodcastError(f"Job {job_id} is not processing")


class PostPodcastStore:
    """Links finished episodes to content records, one row per locale."""

    def __init__(self, db: Database):
        self.db = db

    def upsert(self, post_id: str, locale: str, audio_url: str, duration_seconds: float | None,
               script_content: str) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """INSERT INTO post_podcasts (post_id, locale, status, audio_url, duration_seconds,
                       script_content, updated_at)
                   VALUES (?, ?, 'completed', ?, ?, ?, ?)
                   ON CONFLICT (post_id, locale) DO UPDATE SET
                       status = excluded.status, audio_url = excluded.audio_url,
                       duration_seconds = excluded.duration_seconds,
                       script_content = excluded.script_content, updated_at = excluded.updated_at""",
                (post_id, locale, audio_url, duration_seconds, script_content, utc_now()),
            )

    def get(self, post_id: str, locale: str) -> dict | None:
        rows = self.db.query(
            "SELECT * FROM post_podcasts WHERE post_id = ? AND locale = ?", (post_id, locale)
        )
        return dict(rows[0]) if rows else None


class PersonalityStore:
    """Per-locale personality rows.

    ``update`` runs a read-modify-write cycle inside one ``BEGIN IMMEDIATE``
    transaction, so concurrent updates to a locale are serialized across
    threads and processes sharing the database file.
    """

    def __init__(self, db: Database):
        self.db = db

    def get_or_create(self, locale: str) -> PersonalityState:
        with self.db.transaction() as conn:
            return self._read(conn, locale)

    def save(self, state: PersonalityState) -> None:
        with self.db.transaction() as conn:
            self._write(conn, state)

    def update(self, locale: str, change: Callable[[PersonalityState], PersonalityState]) -> PersonalityState:
        """Apply ``change`` to the locale's current state and persist the result atomically."""
        with self.db.transaction() as conn:
            state = change(self._read(conn, locale))
            self._write(conn, state)
        return state

    def set_paused(self, locale: str, paused: bool) -> None:
        self.update(locale, lambda state: replace(state, paused=paused))

    def _read(self, conn: sqlite3.Connection, locale: str) -> PersonalityState:
        row = conn.execute(
            "SELECT * FROM podcast_personality_state WHERE locale = ?", (locale,)
        ).fetchone()
        if row is None:
            state = default_state(locale)
            now = utc_now()
            conn.execute(
                """INSERT INTO podcast_personality_state (locale, traits, created_at, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (locale, json.dumps(state.traits), now, now),
            )
            state.updated_at = now
            return state
        return PersonalityState(
            locale=row["locale"],
            traits=json.loads(row["traits"]),
            episode_count=row["episode_count"],
            relationship_phase=row["relationship_phase"],
            paused=bool(row["paused"]),
            inside_joke_count=row["inside_joke_count"],
            host_name=row["host_name"],
            memorable_moments=json.loads(row["memorable_moments"]),
            last_episode_at=row["last_episode_at"],
            updated_at=row["updated_at"],
        )

    def _write(self, conn: sqlite3.Connection, state: PersonalityState) -> None:
        state.updated_at = utc_now()
        conn.execute(
            """UPDATE podcast_personality_state SET episode_count = ?, relationship_phase = ?,
                   traits = ?, paused = ?, inside_joke_count = ?, host_name = ?,
                   memorable_moments = ?, last_episode_at = ?, updated_at = ?
               WHERE locale = ?""",
            (state.episode_count, state.relationship_phase, json.dumps(state.traits),
             int(state.paused), state.inside_joke_count, state.host_name,
             json.dumps(state.memorable_moments), state.last_episode_at, state.updated_at,
             state.locale),
        )
