"""Self-service claim API endpoints.

The auth gateway forwards the caller's identity id in ``X-Identity-Id``.
Endpoints list match candidates, check eligibility, and claim or release
records on the caller's behalf.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from claimlink.claims.executor import ClaimExecutor
from claimlink.errors import NotFound
from claimlink.identity.match_cache import MatchCache
from claimlink.identity.schemas import (
    ClaimableRecord,
    ClaimAuditEntry,
    Eligibility,
    Identity,
    MatchCandidate,
    RecordKind,
    RecordRef,
)
from claimlink.repositories.identity_repo import IdentityRepository
from claimlink.repositories.record_repo import RecordRepository

router = APIRouter(prefix="/claims", tags=["claims"])


class MatchesResponse(BaseModel):
    """Candidates for the calling identity."""

    records: list[MatchCandidate] = Field(description="Claimable record candidates")
    submissions: list[MatchCandidate] = Field(
        description="Pending submissions that look like the caller's"
    )
    searched_at: datetime = Field(description="When the underlying search ran")


class ClaimRequest(BaseModel):
    """Optional note attached to a claim or release."""

    notes: str | None = Field(default=None, max_length=500)


class OwnedRecordsResponse(BaseModel):
    """Records currently held by the caller."""

    records: list[ClaimableRecord]


def get_identity_repo(request: Request) -> IdentityRepository:
    """Dependency to get IdentityRepository from app state."""
    return request.app.state.identity_repo


def get_record_repo(request: Request) -> RecordRepository:
    """Dependency to get RecordRepository from app state."""
    return request.app.state.record_repo


def get_match_cache(request: Request) -> MatchCache:
    """Dependency to get MatchCache from app state."""
    return request.app.state.match_cache


def get_claim_executor(request: Request) -> ClaimExecutor:
    """Dependency to get ClaimExecutor from app state."""
    return request.app.state.claim_executor


async def get_current_identity(
    x_identity_id: str | None = Header(default=None),
    identities: IdentityRepository = Depends(get_identity_repo),
) -> Identity:
    """Resolve the caller from the ``X-Identity-Id`` header.

    Raises:
        HTTPException: 401 when the header is missing
        NotFound: Header names an unknown identity
    """
    if not x_identity_id:
        raise HTTPException(status_code=401, detail="X-Identity-Id header required")
    identity = await identities.get(x_identity_id)
    if identity is None:
        raise NotFound(f"Identity {x_identity_id} not found")
    return identity


@router.get("/matches", response_model=MatchesResponse)
async def list_matches(
    refresh: bool = Query(default=False, description="Bypass the cache"),
    identity: Identity = Depends(get_current_identity),
    cache: MatchCache = Depends(get_match_cache),
) -> MatchesResponse:
    """List records and submissions that may belong to the caller.

    Results are cached per identity for a few minutes; ``refresh=true``
    drops the cached entry and searches again.
    """
    if refresh:
        result = await cache.search_again(identity)
    else:
        result = await cache.get(identity)
    return MatchesResponse(
        records=list(result.records),
        submissions=list(result.submissions),
        searched_at=result.searched_at,
    )


@router.get("/mine", response_model=OwnedRecordsResponse)
async def list_owned(
    identity: Identity = Depends(get_current_identity),
    records: RecordRepository = Depends(get_record_repo),
) -> OwnedRecordsResponse:
    """List records the caller currently holds."""
    return OwnedRecordsResponse(records=await records.list_owned_by(identity.id))


@router.get("/{kind}/{record_id}/eligibility", response_model=Eligibility)
async def check_eligibility(
    kind: RecordKind,
    record_id: str,
    identity: Identity = Depends(get_current_identity),
    executor: ClaimExecutor = Depends(get_claim_executor),
) -> Eligibility:
    """Check whether the caller could claim a record right now."""
    return await executor.can_claim(identity, RecordRef(kind=kind, id=record_id))


@router.post("/{kind}/{record_id}", response_model=ClaimAuditEntry, status_code=201)
async def claim_record(
    kind: RecordKind,
    record_id: str,
    body: ClaimRequest | None = None,
    identity: Identity = Depends(get_current_identity),
    executor: ClaimExecutor = Depends(get_claim_executor),
) -> ClaimAuditEntry:
    """Claim a record for the caller.

    Succeeds when the record is unclaimed and either its contact email is
    the caller's email or its confidence for the caller reaches the
    self-service threshold. Returns the audit entry.
    """
    return await executor.claim(
        identity,
        RecordRef(kind=kind, id=record_id),
        notes=body.notes if body else None,
    )


@router.delete("/{kind}/{record_id}", response_model=ClaimAuditEntry | None)
async def unclaim_record(
    kind: RecordKind,
    record_id: str,
    notes: str | None = Query(default=None, max_length=500),
    identity: Identity = Depends(get_current_identity),
    executor: ClaimExecutor = Depends(get_claim_executor),
) -> ClaimAuditEntry | None:
    """Release a record the caller holds."""
    return await executor.unclaim(
        identity, RecordRef(kind=kind, id=record_id), notes=notes
    )
