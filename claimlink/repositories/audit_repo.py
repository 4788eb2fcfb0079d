"""Append-only store for claim audit entries.

Entries are inserted once and never updated or deleted. Reads are
newest-first and paginated.
"""

import logging
from datetime import datetime

from claimlink.db.turso import TursoClient
from claimlink.identity.schemas import (
    ClaimAction,
    ClaimAuditEntry,
    ClaimMethod,
    RecordKind,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_CAP = 50

_COLUMNS = """id, record_kind, record_id, action, claimed_by_identity_id, method,
              admin_assisted, admin_identity_id, claimed_at, notes"""


class AuditRepository:
    """Append-only claim audit log backed by libSQL."""

    def __init__(self, db_client: TursoClient, page_cap: int = DEFAULT_PAGE_CAP):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
            page_cap: Upper bound on rows returned by one read
        """
        self._db = db_client
        self._page_cap = page_cap

    @property
    def page_cap(self) -> int:
        """Maximum entries returned by one read."""
        return self._page_cap

    async def initialize(self) -> None:
        """Create claim_audit table if not exists."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS claim_audit (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT UNIQUE NOT NULL,
                record_kind TEXT NOT NULL,
                record_id TEXT NOT NULL,
                action TEXT NOT NULL,
                claimed_by_identity_id TEXT NOT NULL,
                method TEXT NOT NULL,
                admin_assisted INTEGER NOT NULL DEFAULT 0,
                admin_identity_id TEXT,
                claimed_at TEXT NOT NULL,
                notes TEXT,
                CHECK (method != 'admin_manual' OR admin_identity_id IS NOT NULL)
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_claim_audit_record
            ON claim_audit(record_id, record_kind, claimed_at)
            """,
            ]
        )
        logger.info("Claim audit schema initialized")

    async def append(self, entry: ClaimAuditEntry) -> None:
        """Append an entry. There is no update or delete counterpart."""
        await self._db.execute(
            f"""
            INSERT INTO claim_audit ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                entry.id,
                entry.record_kind.value,
                entry.record_id,
                entry.action.value,
                entry.claimed_by_identity_id,
                entry.method.value,
                1 if entry.admin_assisted else 0,
                entry.admin_identity_id,
                entry.claimed_at.isoformat(),
                entry.notes,
            ],
        )
        logger.debug(f"Appended audit entry {entry.id} for {entry.record_id}")

    def _clamp(self, limit: int, offset: int) -> tuple[int, int]:
        return max(1, min(limit, self._page_cap)), max(0, offset)

    @staticmethod
    def _row_to_entry(row) -> ClaimAuditEntry:
        return ClaimAuditEntry(
            id=row[0],
            record_kind=RecordKind(row[1]),
            record_id=row[2],
            action=ClaimAction(row[3]),
            claimed_by_identity_id=row[4],
            method=ClaimMethod(row[5]),
            admin_assisted=bool(row[6]),
            admin_identity_id=row[7],
            claimed_at=datetime.fromisoformat(row[8]),
            notes=row[9],
        )

    @staticmethod
    def _record_filter(
        record_id: str, record_kind: RecordKind | None
    ) -> tuple[str, list]:
        if record_kind is None:
            return "record_id = ?", [record_id]
        return "record_id = ? AND record_kind = ?", [record_id, record_kind.value]

    async def list_for_record(
        self,
        record_id: str,
        record_kind: RecordKind | None = None,
        limit: int = DEFAULT_PAGE_CAP,
        offset: int = 0,
    ) -> list[ClaimAuditEntry]:
        """Full history of one record, newest first.

        Args:
            record_id: Record identifier
            record_kind: Restrict to one kind; None matches any kind
            limit: Page size (capped)
            offset: Rows to skip

        Returns:
            Audit entries, newest first
        """
        limit, offset = self._clamp(limit, offset)
        where, params = self._record_filter(record_id, record_kind)
        result = await self._db.execute(
            f"""
            SELECT {_COLUMNS}
            FROM claim_audit
            WHERE {where}
            ORDER BY claimed_at DESC, seq DESC
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        )
        return [self._row_to_entry(row) for row in result.rows]

    async def list_recent(
        self,
        limit: int = DEFAULT_PAGE_CAP,
        offset: int = 0,
    ) -> list[ClaimAuditEntry]:
        """Most recent entries across all records."""
        limit, offset = self._clamp(limit, offset)
        result = await self._db.execute(
            f"""
            SELECT {_COLUMNS}
            FROM claim_audit
            ORDER BY claimed_at DESC, seq DESC
            LIMIT ? OFFSET ?
            """,
            [limit, offset],
        )
        return [self._row_to_entry(row) for row in result.rows]

    async def count(
        self,
        record_id: str | None = None,
        record_kind: RecordKind | None = None,
    ) -> int:
        """Count entries, optionally for one record."""
        if record_id:
            where, params = self._record_filter(record_id, record_kind)
            result = await self._db.execute(
                f"SELECT COUNT(*) FROM claim_audit WHERE {where}", params
            )
        else:
            result = await self._db.execute("SELECT COUNT(*) FROM claim_audit")
        return result.rows[0][0]
