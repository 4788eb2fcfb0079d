"""Repository for identities mirrored from the auth provider."""

from claimlink.db.turso import TursoClient
from claimlink.identity.schemas import Identity


class IdentityRepository:
    """Read access to authenticated identities.

    The auth provider owns these rows; ``upsert`` is how its sync job
    (or a test) mirrors them locally.
    """

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create identities table if not exists."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS identities (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                full_name TEXT,
                phone TEXT
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_identities_email
            ON identities(email)
            """,
            ]
        )

    async def upsert(self, identity: Identity) -> None:
        """Insert or update an identity."""
        await self._db.execute(
            """
            INSERT INTO identities (id, email, full_name, phone)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                email = excluded.email,
                full_name = excluded.full_name,
                phone = excluded.phone
            """,
            [identity.id, identity.email, identity.full_name, identity.phone],
        )

    async def get(self, identity_id: str) -> Identity | None:
        """Get identity by id, or None if unknown."""
        result = await self._db.execute(
            "SELECT id, email, full_name, phone FROM identities WHERE id = ?",
            [identity_id],
        )
        if result.rows:
            row = result.rows[0]
            return Identity(id=row[0], email=row[1], full_name=row[2], phone=row[3])
        return None

    async def search_by_email(self, query: str, limit: int = 5) -> list[Identity]:
        """Case-insensitive partial match on email.

        Args:
            query: Fragment of an email address, e.g. "anv@"
            limit: Maximum identities to return

        Returns:
            Matching identities ordered by email
        """
        fragment = query.strip().lower()
        if not fragment:
            return []
        escaped = (
            fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        result = await self._db.execute(
            """
            SELECT id, email, full_name, phone
            FROM identities
            WHERE lower(email) LIKE ? ESCAPE '\\'
            ORDER BY email
            LIMIT ?
            """,
            [f"%{escaped}%", limit],
        )
        return [
            Identity(id=row[0], email=row[1], full_name=row[2], phone=row[3])
            for row in result.rows
        ]
