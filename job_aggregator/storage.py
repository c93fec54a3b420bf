"""SQLite persistence for normalized jobs.

Responsibilities:
- Idempotent, transactional upsert of fetched jobs.
- Reads for the surrounding application (search, saved jobs).
- User/scoring updates (save, unsave, match score).

The upsert conflict target is ``dedup_key``, the same identity the
aggregator deduplicates on, so a listing fetched twice is stored once.
On conflict every fetched column is refreshed while ``id``, ``is_saved``,
``match_score`` and ``created_at`` are kept.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from .errors import PersistenceError
from .models import Job
from .utils import utcnow

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    dedup_key TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    company TEXT NOT NULL,
    location TEXT,
    description TEXT,
    requirements TEXT NOT NULL DEFAULT '[]',
    salary_min INTEGER,
    salary_max INTEGER,
    salary_currency TEXT,
    salary_period TEXT,
    source TEXT NOT NULL,
    source_url TEXT NOT NULL,
    source_job_id TEXT,
    posted_date TEXT,
    scraped_at TEXT NOT NULL,
    is_remote INTEGER NOT NULL DEFAULT 0,
    is_saved INTEGER NOT NULL DEFAULT 0,
    match_score REAL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_jobs_source ON jobs(source);
CREATE INDEX IF NOT EXISTS idx_jobs_company ON jobs(company);
CREATE INDEX IF NOT EXISTS idx_jobs_is_saved ON jobs(is_saved);
"""

UPSERT_SQL = """
INSERT INTO jobs (
    id, dedup_key, title, company, location, description, requirements,
    salary_min, salary_max, salary_currency, salary_period,
    source, source_url, source_job_id, posted_date, scraped_at, is_remote,
    created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(dedup_key) DO UPDATE SET
    title = excluded.title,
    company = excluded.company,
    location = excluded.location,
    description = excluded.description,
    requirements = excluded.requirements,
    salary_min = excluded.salary_min,
    salary_max = excluded.salary_max,
    salary_currency = excluded.salary_currency,
    salary_period = excluded.salary_period,
    source = excluded.source,
    source_url = excluded.source_url,
    source_job_id = excluded.source_job_id,
    posted_date = excluded.posted_date,
    scraped_at = excluded.scraped_at,
    is_remote = excluded.is_remote,
    updated_at = excluded.updated_at
"""


class JobSearchQuery(BaseModel):
    """Filters for reading stored jobs back."""

    keywords: Optional[str] = None
    location: Optional[str] = None
    min_salary: Optional[int] = None
    sources: List[str] = Field(default_factory=list)
    remote_only: bool = False
    limit: Optional[int] = Field(default=50, ge=0)
    offset: Optional[int] = Field(default=None, ge=0)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def _job_params(job: Job, now: str) -> Tuple[Any, ...]:
    return (
        job.id,
        job.dedup_key,
        job.title,
        job.company,
        job.location,
        job.description,
        json.dumps(job.requirements, ensure_ascii=False),
        job.salary_min,
        job.salary_max,
        job.salary_currency,
        job.salary_period,
        job.source,
        job.source_url,
        job.source_id,
        _iso(job.posted_date),
        _iso(job.fetched_at),
        int(job.is_remote),
        now,
        now,
    )


def row_to_job(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        source=row["source"],
        source_id=row["source_job_id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        description=row["description"],
        requirements=json.loads(row["requirements"] or "[]"),
        salary_min=row["salary_min"],
        salary_max=row["salary_max"],
        salary_currency=row["salary_currency"],
        salary_period=row["salary_period"],
        source_url=row["source_url"],
        posted_date=row["posted_date"],
        fetched_at=row["scraped_at"],
        is_remote=bool(row["is_remote"]),
        is_saved=bool(row["is_saved"]),
        match_score=row["match_score"],
    )


class SqliteJobRepository:
    """Job repository backed by a SQLite file.

    Every public method opens its own connection, so the repository can be
    shared across threads.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = str(Path(path).expanduser())
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"cannot open database {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            # "with conn" commits on success and rolls back on error
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(f"database error: {exc}") from exc
        finally:
            conn.close()

    def upsert(self, jobs: Sequence[Job]) -> int:
        """Insert or refresh ``jobs`` in one transaction; returns rows written.

        Raises ``PersistenceError`` (with ``jobs`` attached) if the
        transaction fails; nothing is written in that case.
        """
        if not jobs:
            return 0
        now = utcnow().isoformat()
        try:
            with self._connect() as conn:
                written = 0
                for job in jobs:
                    written += conn.execute(UPSERT_SQL, _job_params(job, now)).rowcount
        except PersistenceError as exc:
            raise PersistenceError(str(exc), jobs=list(jobs)) from exc.__cause__
        logger.info("Upserted %d jobs into %s", written, self.path)
        return written

    def get(self, job_id: str) -> Optional[Job]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return row_to_job(row) if row else None

    def count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0]

    def search(self, query: JobSearchQuery) -> List[Job]:
        """Stored jobs matching ``query``, newest posting first."""
        clauses: List[str] = []
        params: List[Any] = []

        if query.keywords:
            like = f"%{query.keywords.lower()}%"
            clauses.append("(LOWER(title) LIKE ? OR LOWER(description) LIKE ? OR LOWER(company) LIKE ?)")
            params.extend([like, like, like])
        if query.location:
            clauses.append("LOWER(location) LIKE ?")
            params.append(f"%{query.location.lower()}%")
        if query.min_salary is not None:
            clauses.append("COALESCE(salary_max, salary_min) >= ?")
            params.append(query.min_salary)
        if query.sources:
            clauses.append(f"source IN ({', '.join('?' for _ in query.sources)})")
            params.extend(query.sources)
        if query.remote_only:
            clauses.append("is_remote = 1")

        sql = "SELECT * FROM jobs"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY COALESCE(posted_date, scraped_at) DESC, rowid"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)
            if query.offset:
                sql += " OFFSET ?"
                params.append(query.offset)

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [row_to_job(r) for r in rows]

    def get_saved(self) -> List[Job]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM jobs WHERE is_saved = 1 ORDER BY updated_at DESC, rowid").fetchall()
        return [row_to_job(r) for r in rows]

    def _set(self, job_id: str, column: str, value: Any) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE jobs SET {column} = ?, updated_at = ? WHERE id = ?",
                (value, utcnow().isoformat(), job_id),
            )
        return cur.rowcount > 0

    def save(self, job_id: str) -> bool:
        return self._set(job_id, "is_saved", 1)

    def unsave(self, job_id: str) -> bool:
        return self._set(job_id, "is_saved", 0)

    def update_match_score(self, job_id: str, score: float) -> bool:
        return self._set(job_id, "match_score", float(score))
