"""Admin override and audit log API endpoints.

Admin authorization is enforced by the gateway; this service only
requires that the admin is identified (``X-Identity-Id``) so every
change can be attributed.
"""

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, Field

from claimlink.claims.admin import AdminOverride, BulkItem, BulkItemResult
from claimlink.identity.schemas import ClaimAuditEntry, Identity, RecordKind, RecordRef
from claimlink.repositories.audit_repo import AuditRepository
from claimlink.repositories.identity_repo import IdentityRepository

router = APIRouter(prefix="/admin", tags=["admin"])


class ForceClaimRequest(BaseModel):
    """Request to link a record to an identity."""

    target_identity_id: str = Field(description="Identity that will own the record")
    notes: str | None = Field(default=None, max_length=500)


class BulkUpdateRequest(BaseModel):
    """Batch of claim/unclaim operations."""

    items: list[BulkItem] = Field(min_length=1, max_length=200)


class BulkUpdateResponse(BaseModel):
    """Per-item outcomes of a bulk update."""

    results: list[BulkItemResult]
    succeeded: int
    failed: int


class AuditPage(BaseModel):
    """One page of audit entries, newest first."""

    entries: list[ClaimAuditEntry]
    limit: int
    offset: int


def get_admin_override(request: Request) -> AdminOverride:
    """Dependency to get AdminOverride from app state."""
    return request.app.state.admin_override


def get_audit_repo(request: Request) -> AuditRepository:
    """Dependency to get AuditRepository from app state."""
    return request.app.state.audit_repo


def get_identity_repo(request: Request) -> IdentityRepository:
    """Dependency to get IdentityRepository from app state."""
    return request.app.state.identity_repo


async def get_admin_identity(
    x_identity_id: str | None = Header(default=None),
    identities: IdentityRepository = Depends(get_identity_repo),
) -> Identity | None:
    """Resolve the acting admin, or None when unattributed.

    Services raise AdminAttributionMissing for None.
    """
    if not x_identity_id:
        return None
    return await identities.get(x_identity_id)


@router.get("/identities", response_model=list[Identity])
async def search_identities(
    q: str = Query(description="Email fragment, e.g. 'anv@'"),
    limit: int = Query(default=5, ge=1, le=50),
    override: AdminOverride = Depends(get_admin_override),
) -> list[Identity]:
    """Find identities by partial, case-insensitive email match."""
    return await override.search_identities(q, limit=limit)


@router.post(
    "/claims/{kind}/{record_id}", response_model=ClaimAuditEntry, status_code=201
)
async def force_claim(
    kind: RecordKind,
    record_id: str,
    body: ForceClaimRequest,
    admin: Identity | None = Depends(get_admin_identity),
    override: AdminOverride = Depends(get_admin_override),
) -> ClaimAuditEntry:
    """Link a record to an identity, bypassing confidence checks."""
    return await override.force_claim(
        admin,
        body.target_identity_id,
        RecordRef(kind=kind, id=record_id),
        notes=body.notes,
    )


@router.delete("/claims/{kind}/{record_id}", response_model=ClaimAuditEntry | None)
async def admin_unclaim(
    kind: RecordKind,
    record_id: str,
    notes: str | None = Query(default=None, max_length=500),
    admin: Identity | None = Depends(get_admin_identity),
    override: AdminOverride = Depends(get_admin_override),
) -> ClaimAuditEntry | None:
    """Release a record regardless of its holder."""
    return await override.unclaim(
        admin, RecordRef(kind=kind, id=record_id), notes=notes
    )


@router.post("/claims/bulk", response_model=BulkUpdateResponse)
async def bulk_update(
    body: BulkUpdateRequest,
    admin: Identity | None = Depends(get_admin_identity),
    override: AdminOverride = Depends(get_admin_override),
) -> BulkUpdateResponse:
    """Apply a batch of claims and releases; each item stands alone."""
    results = await override.bulk_update(admin, body.items)
    succeeded = sum(1 for r in results if r.success)
    return BulkUpdateResponse(
        results=results,
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )


@router.get("/audit", response_model=AuditPage)
async def recent_audit(
    limit: int = Query(default=50, ge=1),
    offset: int = Query(default=0, ge=0),
    audit: AuditRepository = Depends(get_audit_repo),
) -> AuditPage:
    """Most recent audit entries across all records (page size capped)."""
    entries = await audit.list_recent(limit=limit, offset=offset)
    return AuditPage(entries=entries, limit=min(limit, audit.page_cap), offset=offset)


@router.get("/audit/{record_id}", response_model=AuditPage)
async def record_audit(
    record_id: str,
    limit: int = Query(default=50, ge=1),
    offset: int = Query(default=0, ge=0),
    audit: AuditRepository = Depends(get_audit_repo),
) -> AuditPage:
    """Ownership history of every record sharing this id, newest first."""
    entries = await audit.list_for_record(record_id, limit=limit, offset=offset)
    return AuditPage(entries=entries, limit=min(limit, audit.page_cap), offset=offset)


@router.get("/audit/{kind}/{record_id}", response_model=AuditPage)
async def typed_record_audit(
    kind: RecordKind,
    record_id: str,
    limit: int = Query(default=50, ge=1),
    offset: int = Query(default=0, ge=0),
    audit: AuditRepository = Depends(get_audit_repo),
) -> AuditPage:
    """History of one participant or project, newest first."""
    entries = await audit.list_for_record(
        record_id, record_kind=kind, limit=limit, offset=offset
    )
    return AuditPage(entries=entries, limit=min(limit, audit.page_cap), offset=offset)
