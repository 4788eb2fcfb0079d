"""Repository for claimable records (participants and projects).

The tables belong to the surrounding application. This repository reads
them and performs conditional ownership updates only; ``add`` exists for
local development and tests.
"""

import json
import logging
from datetime import datetime

from claimlink.db.turso import TursoClient
from claimlink.identity.schemas import Participant, Project, RecordKind, RecordRef

logger = logging.getLogger(__name__)

# kind -> (table, column holding the display name)
_TABLES: dict[RecordKind, tuple[str, str]] = {
    RecordKind.PARTICIPANT: ("participants", "name"),
    RecordKind.PROJECT: ("projects", "title"),
}

_OWNERSHIP_COLUMNS = "owner_link, claimed_at, match_confidence, match_criteria"


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _json_list(value: str | None) -> list[str]:
    if not value:
        return []
    return json.loads(value) or []


class RecordRepository:
    """Reads claimable records and applies compare-and-set ownership updates.

    Every ownership write is guarded by the owner value the caller last
    observed, so two writers racing on one record cannot both succeed.
    """

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create record tables if not exists."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS participants (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                contact_email TEXT,
                contact_phone TEXT,
                location TEXT,
                skills TEXT,
                interests TEXT,
                owner_link TEXT,
                claimed_at TEXT,
                match_confidence INTEGER,
                match_criteria TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
                """
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                contact_email TEXT,
                contact_phone TEXT,
                location TEXT,
                owner_link TEXT,
                claimed_at TEXT,
                match_confidence INTEGER,
                match_criteria TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_participants_owner
            ON participants(owner_link)
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_projects_owner
            ON projects(owner_link)
            """,
            ]
        )

    @staticmethod
    def _table(kind: RecordKind) -> tuple[str, str]:
        try:
            return _TABLES[kind]
        except KeyError:
            msg = f"{kind.value} records are not claimable"
            raise ValueError(msg) from None

    async def add(self, record: Participant | Project) -> None:
        """Insert or replace a record."""
        criteria = (
            json.dumps(record.match_criteria)
            if record.match_criteria is not None
            else None
        )
        claimed_at = record.claimed_at.isoformat() if record.claimed_at else None
        if isinstance(record, Participant):
            await self._db.execute(
                """
                INSERT OR REPLACE INTO participants
                    (id, name, contact_email, contact_phone, location, skills,
                     interests, owner_link, claimed_at, match_confidence,
                     match_criteria)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    record.id,
                    record.name,
                    record.contact_email,
                    record.contact_phone,
                    record.location,
                    json.dumps(record.skills),
                    json.dumps(record.interests),
                    record.owner_link,
                    claimed_at,
                    record.match_confidence,
                    criteria,
                ],
            )
        else:
            await self._db.execute(
                """
                INSERT OR REPLACE INTO projects
                    (id, title, contact_email, contact_phone, location,
                     owner_link, claimed_at, match_confidence, match_criteria)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    record.id,
                    record.name,
                    record.contact_email,
                    record.contact_phone,
                    record.location,
                    record.owner_link,
                    claimed_at,
                    record.match_confidence,
                    criteria,
                ],
            )

    def _select(self, kind: RecordKind) -> str:
        table, name_col = self._table(kind)
        extra = ", skills, interests" if kind == RecordKind.PARTICIPANT else ""
        return (
            f"SELECT id, {name_col}, contact_email, contact_phone, location, "
            f"{_OWNERSHIP_COLUMNS}{extra} FROM {table}"
        )

    @staticmethod
    def _row_to_record(kind: RecordKind, row) -> Participant | Project:
        fields = {
            "id": row[0],
            "name": row[1],
            "contact_email": row[2],
            "contact_phone": row[3],
            "location": row[4],
            "owner_link": row[5],
            "claimed_at": _dt(row[6]),
            "match_confidence": row[7],
            "match_criteria": json.loads(row[8]) if row[8] else None,
        }
        if kind == RecordKind.PARTICIPANT:
            return Participant(
                **fields, skills=_json_list(row[9]), interests=_json_list(row[10])
            )
        return Project(**fields)

    async def get(self, ref: RecordRef) -> Participant | Project | None:
        """Get a record by reference.

        Returns:
            The record, or None if it does not exist or is not claimable
        """
        if ref.kind not in _TABLES:
            return None
        result = await self._db.execute(
            f"{self._select(ref.kind)} WHERE id = ?",
            [ref.id],
        )
        if result.rows:
            return self._row_to_record(ref.kind, result.rows[0])
        return None

    async def list_unclaimed(self, kind: RecordKind) -> list[Participant | Project]:
        """List every record of a kind whose owner_link is null."""
        result = await self._db.execute(
            f"{self._select(kind)} WHERE owner_link IS NULL ORDER BY id"
        )
        return [self._row_to_record(kind, row) for row in result.rows]

    async def list_owned_by(self, identity_id: str) -> list[Participant | Project]:
        """List records of every kind held by an identity."""
        records: list[Participant | Project] = []
        for kind in _TABLES:
            result = await self._db.execute(
                f"{self._select(kind)} WHERE owner_link = ? ORDER BY id",
                [identity_id],
            )
            records.extend(self._row_to_record(kind, row) for row in result.rows)
        return records

    async def compare_and_set_owner(
        self,
        ref: RecordRef,
        expected_owner: str | None,
        new_owner: str | None,
        claimed_at: datetime | None,
    ) -> bool:
        """Set owner_link only if it still equals ``expected_owner``.

        Any change of holder clears stale match metadata.

        Returns:
            True if the row was updated, False if ownership changed underneath
        """
        table, _ = self._table(ref.kind)
        result = await self._db.execute(
            f"""
            UPDATE {table}
            SET owner_link = ?,
                claimed_at = ?,
                match_confidence = NULL,
                match_criteria = NULL
            WHERE id = ? AND owner_link IS ?
            """,
            [
                new_owner,
                claimed_at.isoformat() if claimed_at else None,
                ref.id,
                expected_owner,
            ],
        )
        updated = result.rows_affected > 0
        if not updated:
            logger.debug(f"Ownership CAS missed for {ref}")
        return updated

    async def restore_ownership(
        self,
        snapshot: Participant | Project,
        expected_owner: str | None,
    ) -> bool:
        """Write ownership columns back to a previously read snapshot.

        Used to compensate an ownership change whose audit entry could not
        be written. Guarded by the owner the failed operation installed.

        Returns:
            True if the row was restored
        """
        table, _ = self._table(snapshot.kind)
        result = await self._db.execute(
            f"""
            UPDATE {table}
            SET owner_link = ?,
                claimed_at = ?,
                match_confidence = ?,
                match_criteria = ?
            WHERE id = ? AND owner_link IS ?
            """,
            [
                snapshot.owner_link,
                snapshot.claimed_at.isoformat() if snapshot.claimed_at else None,
                snapshot.match_confidence,
                json.dumps(snapshot.match_criteria)
                if snapshot.match_criteria is not None
                else None,
                snapshot.id,
                expected_owner,
            ],
        )
        return result.rows_affected > 0
