"""Repository for pending submissions.

Submissions are written by the public submission pipeline; candidate
search only reads recent pending rows.
"""

import json
from datetime import UTC, datetime

from claimlink.db.turso import TursoClient
from claimlink.identity.schemas import Submission


def _utc(value: str) -> datetime:
    # Rows written by other tools may omit the offset; those are UTC
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


class SubmissionRepository:
    """Reads pending submissions for candidate search."""

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create submissions table if not exists."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS submissions (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                content TEXT,
                contact_email TEXT,
                contact_phone TEXT,
                submitted_by TEXT,
                location TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TEXT NOT NULL
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_submissions_pending
            ON submissions(status, created_at)
            """,
            ]
        )

    async def add(self, submission: Submission) -> None:
        """Insert or replace a submission."""
        await self._db.execute(
            """
            INSERT OR REPLACE INTO submissions
                (id, type, title, content, contact_email, contact_phone,
                 submitted_by, location, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                submission.id,
                submission.type,
                submission.title,
                json.dumps(submission.content),
                submission.contact_email,
                submission.contact_phone,
                submission.submitted_by,
                submission.location,
                submission.status,
                submission.created_at.isoformat(),
            ],
        )

    async def list_pending_since(self, since: datetime) -> list[Submission]:
        """List pending submissions created at or after ``since``.

        Args:
            since: Start of the window (timezone-aware UTC)

        Returns:
            Submissions, newest first
        """
        result = await self._db.execute(
            """
            SELECT id, type, title, content, contact_email, contact_phone,
                   submitted_by, location, status, created_at
            FROM submissions
            WHERE status = 'pending'
              AND datetime(created_at) >= datetime(?)
            ORDER BY datetime(created_at) DESC, created_at DESC
            """,
            [since.isoformat()],
        )
        return [
            Submission(
                id=row[0],
                type=row[1],
                title=row[2],
                content=json.loads(row[3]) if row[3] else {},
                contact_email=row[4],
                contact_phone=row[5],
                submitted_by=row[6],
                location=row[7],
                status=row[8],
                created_at=_utc(row[9]),
            )
            for row in result.rows
        ]
