"""Turso/libSQL database client wrapper."""

import logging
from typing import Any

from libsql_client import Client, LibsqlError, ResultSet, create_client

from claimlink.config import settings
from claimlink.errors import TransientStoreError

logger = logging.getLogger(__name__)

# Failures worth retrying: the statement may succeed on a fresh attempt
TRANSIENT_EXCEPTIONS = (ConnectionError, TimeoutError)


class TursoClient:
    """Wrapper for Turso/libSQL async client.

    Supports both cloud Turso (with auth token) and local SQLite files.
    Connection and timeout failures surface as TransientStoreError.
    """

    def __init__(
        self,
        url: str | None = None,
        auth_token: str | None = None,
    ):
        """Initialize client with connection parameters.

        Args:
            url: Database URL. Defaults to settings or local file.
            auth_token: Auth token for Turso cloud. Defaults to settings.
        """
        self.url = url or settings.turso_database_url or "file:claimlink.db"
        self.auth_token = auth_token or settings.turso_auth_token
        self._client: Client | None = None

    async def connect(self) -> None:
        """Establish database connection."""
        if self._client is not None:
            return

        if self.auth_token and self.url.startswith("libsql://"):
            # Cloud Turso
            self._client = create_client(
                url=self.url,
                auth_token=self.auth_token,
            )
        else:
            # Local file database
            self._client = create_client(url=self.url)

        logger.info(f"Connected to database: {self.url}")

    async def execute(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> ResultSet:
        """Execute a SQL statement.

        Args:
            sql: SQL query with ? placeholders
            params: Query parameters

        Returns:
            ResultSet with rows and metadata

        Raises:
            TransientStoreError: On connection or timeout failure
        """
        if not self._client:
            msg = "Not connected. Call connect() first."
            raise RuntimeError(msg)
        try:
            return await self._client.execute(sql, params or [])
        except TRANSIENT_EXCEPTIONS as e:
            logger.warning(f"Transient database failure: {e}")
            raise TransientStoreError(str(e)) from e
        except LibsqlError as e:
            if getattr(e, "code", None) in ("SQLITE_BUSY", "SQLITE_LOCKED"):
                raise TransientStoreError(str(e)) from e
            raise

    async def execute_batch(self, statements: list[str]) -> None:
        """Execute multiple SQL statements in a batch.

        Args:
            statements: List of SQL statements
        """
        if not self._client:
            msg = "Not connected. Call connect() first."
            raise RuntimeError(msg)
        try:
            await self._client.batch(statements)
        except TRANSIENT_EXCEPTIONS as e:
            raise TransientStoreError(str(e)) from e

    async def close(self) -> None:
        """Close the database connection."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Database connection closed")

    async def is_healthy(self) -> bool:
        """Check if database connection is healthy."""
        try:
            if not self._client:
                return False
            result = await self._client.execute("SELECT 1")
            return len(result.rows) == 1
        except Exception:
            return False
