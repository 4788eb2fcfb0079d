"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from claimlink.db.turso import TursoClient
from claimlink.identity.schemas import Identity
from claimlink.main import _initialize_repositories, _initialize_services, app
from claimlink.repositories import (
    AuditRepository,
    IdentityRepository,
    RecordRepository,
    SubmissionRepository,
)

_STATE_KEYS = (
    "db",
    "record_repo",
    "submission_repo",
    "identity_repo",
    "audit_repo",
    "match_cache",
    "claim_executor",
    "admin_override",
)


@pytest.fixture
async def db_client(tmp_path: Path) -> AsyncIterator[TursoClient]:
    """Create a temp file database client for testing."""
    db_path = tmp_path / "test_claims.db"
    client = TursoClient(url=f"file:{db_path}")
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
async def record_repo(db_client: TursoClient) -> RecordRepository:
    """RecordRepository with initialized tables."""
    repo = RecordRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
async def submission_repo(db_client: TursoClient) -> SubmissionRepository:
    """SubmissionRepository with initialized table."""
    repo = SubmissionRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
async def identity_repo(db_client: TursoClient) -> IdentityRepository:
    """IdentityRepository with initialized table."""
    repo = IdentityRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
async def audit_repo(db_client: TursoClient) -> AuditRepository:
    """AuditRepository with initialized table."""
    repo = AuditRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
def anna() -> Identity:
    """Identity used across claim tests."""
    return Identity(
        id="user-anna",
        email="anna.berg@example.com",
        full_name="Anna Berg",
        phone="+4791234567",
    )


@pytest.fixture
def admin() -> Identity:
    """Admin identity for override tests."""
    return Identity(id="admin-1", email="ops@example.com", full_name="Ops Admin")


@pytest.fixture
async def client(tmp_path: Path) -> AsyncIterator[AsyncClient]:
    """Create async test client for FastAPI app with database."""
    db_path = tmp_path / "test_api.db"
    db = TursoClient(url=f"file:{db_path}")
    await db.connect()

    # Same wiring as the lifespan handler
    app.state.db = db
    await _initialize_repositories(app, db)
    _initialize_services(app)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()
    for key in _STATE_KEYS:
        delattr(app.state, key)
