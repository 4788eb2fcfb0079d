"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from claimlink.api.errors import install_error_handlers
from claimlink.api.router import api_router
from claimlink.claims.admin import AdminOverride, ReassignmentPolicy
from claimlink.claims.executor import ClaimExecutor
from claimlink.config import settings
from claimlink.db.turso import TursoClient
from claimlink.identity.candidate_search import CandidateSearch
from claimlink.identity.confidence import ConfidenceScorer
from claimlink.identity.match_cache import MatchCache
from claimlink.repositories import (
    AuditRepository,
    IdentityRepository,
    RecordRepository,
    SubmissionRepository,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _initialize_repositories(app: FastAPI, db: TursoClient) -> None:
    """Create tables and register repositories in app state."""
    app.state.record_repo = RecordRepository(db)
    app.state.submission_repo = SubmissionRepository(db)
    app.state.identity_repo = IdentityRepository(db)
    app.state.audit_repo = AuditRepository(db, page_cap=settings.audit_page_cap)

    for repo in (
        app.state.record_repo,
        app.state.submission_repo,
        app.state.identity_repo,
        app.state.audit_repo,
    ):
        await repo.initialize()
    logger.info("Repositories initialized")


def _initialize_services(app: FastAPI) -> None:
    """Wire scorer, search, cache, and claim services into app state."""
    scorer = ConfidenceScorer(settings.name_metric)
    search = CandidateSearch(
        records=app.state.record_repo,
        submissions=app.state.submission_repo,
        scorer=scorer,
        record_min_confidence=settings.record_min_confidence,
        submission_min_confidence=settings.submission_min_confidence,
        self_service_threshold=settings.self_service_threshold,
        submission_window=timedelta(days=settings.submission_window_days),
    )
    match_cache = MatchCache(search, ttl_seconds=settings.match_cache_ttl_seconds)

    app.state.match_cache = match_cache
    app.state.claim_executor = ClaimExecutor(
        records=app.state.record_repo,
        audit=app.state.audit_repo,
        scorer=scorer,
        self_service_threshold=settings.self_service_threshold,
        match_cache=match_cache,
        audit_unclaims=settings.audit_unclaims,
    )
    app.state.admin_override = AdminOverride(
        records=app.state.record_repo,
        audit=app.state.audit_repo,
        identities=app.state.identity_repo,
        match_cache=match_cache,
        reassignment_policy=ReassignmentPolicy(settings.reassignment_policy),
        audit_unclaims=settings.audit_unclaims,
    )
    logger.info(
        f"Claim services initialized (metric={settings.name_metric}, "
        f"threshold={settings.self_service_threshold})"
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Initialize database connection
    - Create tables and repositories
    - Wire claim services

    Shutdown:
    - Drop cached matches
    - Close database connection
    """
    logger.info("Starting claimlink...")

    db = TursoClient()
    await db.connect()
    app.state.db = db
    logger.info(f"Database connected: {db.url}")

    await _initialize_repositories(app, db)
    _initialize_services(app)

    yield

    logger.info("Shutting down claimlink...")
    app.state.match_cache.clear()
    await db.close()
    logger.info("Database connection closed")


app = FastAPI(
    title=settings.app_name,
    description="Link pre-signup records to authenticated identities",
    version=settings.app_version,
    lifespan=lifespan,
)

install_error_handlers(app)
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "claimlink.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
