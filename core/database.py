"""
Database module for the automation engine.
Implements SQLite persistence with async support.

(external_id, platform) is UNIQUE on jobs and inserts use INSERT OR IGNORE,
so concurrent runners sharing one database file never create duplicates.
"""

import json
import uuid
import aiosqlite
from pathlib import Path
from dataclasses import asdict
from typing import Optional, List, Dict, Any
from contextlib import asynccontextmanager

from .config import get_config
from .models import (
    JobListing,
    JobStatus,
    JobAnalysis,
    PlatformType,
    SearchProfile,
    utc_now_iso,
)

JSON_LIST_COLUMNS = ("red_flags", "highlights")
JSON_MAP_COLUMNS = ("application_answers",)


class Database:
    """
    Usage:
        db = Database("./data/job_engine.db")
        await db.init()
        job_id = await db.insert_job(job)
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or get_config().DATABASE_PATH)

    async def init(self):
        """Initialize the database schema."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.path) as db:
            # Search profiles (search + application sections stored as JSON)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS search_profiles (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    platform TEXT NOT NULL,
                    enabled INTEGER DEFAULT 1,
                    search_config TEXT,
                    application_config TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)

            # Extracted jobs
            await db.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    external_id TEXT NOT NULL,
                    platform TEXT NOT NULL,
                    profile_id TEXT,
                    url TEXT NOT NULL,
                    title TEXT NOT NULL,
                    company TEXT,
                    location TEXT,
                    salary TEXT,
                    job_type TEXT,
                    description TEXT,
                    posted_date TEXT,
                    easy_apply INTEGER DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'new',
                    match_score REAL,
                    match_reasoning TEXT,
                    summary TEXT,
                    red_flags TEXT,
                    highlights TEXT,
                    applied_at TEXT,
                    application_answers TEXT,
                    cover_letter_used TEXT,
                    resume_used TEXT,
                    created_at TEXT,
                    updated_at TEXT,
                    UNIQUE(external_id, platform)
                )
            """)

            # Saved answers to screening questions
            await db.execute("""
                CREATE TABLE IF NOT EXISTS answer_templates (
                    id TEXT PRIMARY KEY,
                    question_pattern TEXT NOT NULL,
                    answer TEXT NOT NULL,
                    platform TEXT,
                    usage_count INTEGER DEFAULT 0,
                    last_used_at TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TEXT
                )
            """)

            await db.execute("CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_jobs_profile_id ON jobs(profile_id)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_jobs_platform ON jobs(platform)")
            await db.commit()

    @asynccontextmanager
    async def get_db(self):
        """Get a database connection."""
        db = await aiosqlite.connect(self.path)
        db.row_factory = aiosqlite.Row
        try:
            yield db
        finally:
            await db.close()

    # ============== Search profiles ==============

    async def insert_profile(self, profile: SearchProfile):
        """Insert or replace a search profile."""
        async with self.get_db() as db:
            await db.execute("""
                INSERT OR REPLACE INTO search_profiles
                (id, name, platform, enabled, search_config, application_config, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                profile.id,
                profile.name,
                profile.platform.value,
                1 if profile.enabled else 0,
                json.dumps(asdict(profile.search)),
                json.dumps(asdict(profile.application)),
                profile.created_at,
                utc_now_iso(),
            ))
            await db.commit()

    async def get_profile(self, profile_id: str) -> Optional[SearchProfile]:
        async with self.get_db() as db:
            cursor = await db.execute("SELECT * FROM search_profiles WHERE id = ?", (profile_id,))
            row = await cursor.fetchone()
            return self._row_to_profile(row) if row else None

    async def list_enabled_profiles(self, platform: Optional[PlatformType] = None) -> List[SearchProfile]:
        query = "SELECT * FROM search_profiles WHERE enabled = 1"
        params: List[Any] = []
        if platform:
            query += " AND platform = ?"
            params.append(platform.value)
        query += " ORDER BY created_at"

        async with self.get_db() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_profile(row) for row in rows]

    # ============== Jobs ==============

    async def job_exists(self, external_id: str, platform: PlatformType) -> bool:
        async with self.get_db() as db:
            cursor = await db.execute(
                "SELECT 1 FROM jobs WHERE external_id = ? AND platform = ?",
                (external_id, platform.value)
            )
            return await cursor.fetchone() is not None

    async def insert_job(self, job: JobListing) -> Optional[str]:
        """Insert a job. Returns its id, or None if (external_id, platform) already exists."""
        job_id = job.id or str(uuid.uuid4())
        now = utc_now_iso()
        async with self.get_db() as db:
            cursor = await db.execute("""
                INSERT OR IGNORE INTO jobs
                (id, external_id, platform, profile_id, url, title, company, location, salary,
                 job_type, description, posted_date, easy_apply, status, red_flags, highlights,
                 application_answers, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                job_id,
                job.external_id,
                job.platform.value,
                job.profile_id,
                job.url,
                job.title,
                job.company,
                job.location,
                job.salary,
                job.job_type,
                job.description,
                job.posted_date,
                1 if job.easy_apply else 0,
                job.status.value,
                json.dumps(job.red_flags),
                json.dumps(job.highlights),
                json.dumps(job.application_answers),
                now,
                now,
            ))
            await db.commit()
            if cursor.rowcount == 0:
                return None
        job.id = job_id
        return job_id

    async def get_job(self, job_id: str) -> Optional[JobListing]:
        async with self.get_db() as db:
            cursor = await db.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
            row = await cursor.fetchone()
            return self._row_to_job(row) if row else None

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        profile_id: Optional[str] = None,
        platform: Optional[PlatformType] = None,
        limit: int = 500,
    ) -> List[JobListing]:
        clauses, params = [], []
        if status:
            clauses.append("status = ?")
            params.append(status.value)
        if profile_id:
            clauses.append("profile_id = ?")
            params.append(profile_id)
        if platform:
            clauses.append("platform = ?")
            params.append(platform.value)

        query = "SELECT * FROM jobs"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at, rowid LIMIT ?"
        params.append(limit)

        async with self.get_db() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_job(row) for row in rows]

    async def list_missing_description(self, platform: Optional[PlatformType] = None) -> List[JobListing]:
        query = "SELECT * FROM jobs WHERE (description IS NULL OR description = '')"
        params: List[Any] = []
        if platform:
            query += " AND platform = ?"
            params.append(platform.value)
        query += " ORDER BY created_at, rowid"

        async with self.get_db() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_job(row) for row in rows]

    async def update_status(self, job_id: str, status: JobStatus):
        await self._update_job(job_id, status=status.value)

    async def update_analysis(self, job_id: str, analysis: JobAnalysis):
        await self._update_job(
            job_id,
            match_score=analysis.match_score,
            match_reasoning=analysis.reasoning,
            summary=analysis.summary,
            red_flags=json.dumps(analysis.red_flags),
            highlights=json.dumps(analysis.highlights),
            status=JobStatus.REVIEWED.value,
        )

    async def update_description(self, job_id: str, description: str):
        await self._update_job(job_id, description=description)

    async def update_title(self, job_id: str, title: str):
        await self._update_job(job_id, title=title)

    async def mark_applied(
        self,
        job_id: str,
        answers: Dict[str, str],
        resume_used: Optional[str] = None,
        cover_letter: Optional[str] = None,
    ):
        await self._update_job(
            job_id,
            status=JobStatus.APPLIED.value,
            applied_at=utc_now_iso(),
            application_answers=json.dumps(answers or {}),
            resume_used=resume_used,
            cover_letter_used=cover_letter,
        )

    async def _update_job(self, job_id: str, **fields):
        fields["updated_at"] = utc_now_iso()
        assignments = ", ".join(f"{name} = ?" for name in fields)
        async with self.get_db() as db:
            await db.execute(
                f"UPDATE jobs SET {assignments} WHERE id = ?",
                (*fields.values(), job_id)
            )
            await db.commit()

    # ============== Answer templates ==============

    async def find_answer_template(self, question: str) -> Optional[Dict[str, Any]]:
        """Most-used template whose pattern occurs in ``question`` (case-insensitive)."""
        lower = question.lower()
        async with self.get_db() as db:
            cursor = await db.execute("SELECT * FROM answer_templates ORDER BY usage_count DESC")
            rows = await cursor.fetchall()
        for row in rows:
            if row["question_pattern"].lower() in lower:
                return dict(row)
        return None

    async def record_answer_usage(self, template_id: str):
        async with self.get_db() as db:
            await db.execute(
                "UPDATE answer_templates SET usage_count = usage_count + 1, last_used_at = ? WHERE id = ?",
                (utc_now_iso(), template_id)
            )
            await db.commit()

    async def insert_answer_template(
        self,
        question_pattern: str,
        answer: str,
        platform: Optional[str] = None,
    ) -> str:
        template_id = str(uuid.uuid4())
        now = utc_now_iso()
        async with self.get_db() as db:
            await db.execute("""
                INSERT INTO answer_templates (id, question_pattern, answer, platform, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (template_id, question_pattern, answer, platform, now, now))
            await db.commit()
        return template_id

    # ============== Settings ==============

    async def get_setting(self, key: str) -> Optional[str]:
        async with self.get_db() as db:
            cursor = await db.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = await cursor.fetchone()
            return row["value"] if row else None

    async def set_setting(self, key: str, value: str):
        async with self.get_db() as db:
            await db.execute(
                "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, utc_now_iso())
            )
            await db.commit()

    # ============== Row mapping ==============

    @staticmethod
    def _row_to_profile(row: aiosqlite.Row) -> SearchProfile:
        data = dict(row)
        return SearchProfile.from_dict({
            "id": data["id"],
            "name": data["name"],
            "platform": data["platform"],
            "enabled": bool(data["enabled"]),
            "search": json.loads(data.get("search_config") or "{}"),
            "application": json.loads(data.get("application_config") or "{}"),
            "created_at": data.get("created_at"),
            "updated_at": data.get("updated_at"),
        })

    @staticmethod
    def _row_to_job(row: aiosqlite.Row) -> JobListing:
        data = dict(row)
        for column in JSON_LIST_COLUMNS:
            data[column] = json.loads(data.get(column) or "[]")
        for column in JSON_MAP_COLUMNS:
            data[column] = json.loads(data.get(column) or "{}")
        data["platform"] = PlatformType(data["platform"])
        data["status"] = JobStatus(data["status"])
        data["easy_apply"] = bool(data["easy_apply"])
        data["description"] = data.get("description") or ""
        data["company"] = data.get("company") or ""
        data["location"] = data.get("location") or ""
        data["posted_date"] = data.get("posted_date") or ""
        return JobListing(**data)
