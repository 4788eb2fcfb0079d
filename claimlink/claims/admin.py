"""Admin override for record ownership.

Admins can look up identities by email fragment, force a claim on behalf
of an identity (bypassing confidence scoring), release a record, and
apply a batch of claims/releases. Every admin transition is attributed
to the admin in the audit log.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum

import structlog
from pydantic import BaseModel, Field, model_validator

from claimlink.claims.transitions import apply_transition
from claimlink.config import settings
from claimlink.db.retry import retry_transient
from claimlink.errors import (
    AdminAttributionMissing,
    AlreadyClaimed,
    ClaimConflict,
    ClaimError,
    NotClaimed,
    NotFound,
)
from claimlink.identity.match_cache import MatchCache
from claimlink.identity.schemas import (
    ClaimAction,
    ClaimAuditEntry,
    ClaimMethod,
    Identity,
    RecordRef,
)
from claimlink.repositories.audit_repo import AuditRepository
from claimlink.repositories.identity_repo import IdentityRepository
from claimlink.repositories.record_repo import RecordRepository

logger = structlog.get_logger()


class ReassignmentPolicy(str, Enum):
    """What force-claim does with a record that already has an owner."""

    ALLOW = "allow"
    REQUIRE_UNCLAIM = "require_unclaim"


class BulkItem(BaseModel):
    """One operation in a bulk ownership update."""

    action: ClaimAction
    ref: RecordRef
    target_identity_id: str | None = Field(
        default=None, description="Required for claim items"
    )
    notes: str | None = None

    @model_validator(mode="after")
    def _claim_needs_target(self) -> "BulkItem":
        if self.action == ClaimAction.CLAIM and not self.target_identity_id:
            msg = "claim items require target_identity_id"
            raise ValueError(msg)
        return self


class BulkItemResult(BaseModel):
    """Outcome of one bulk item."""

    ref: RecordRef
    action: ClaimAction
    success: bool
    entry: ClaimAuditEntry | None = None
    error_code: str | None = None
    error_message: str | None = None


def _require_admin(admin: Identity | None) -> Identity:
    if admin is None or not admin.id:
        raise AdminAttributionMissing("Admin operations require an admin identity")
    return admin


class AdminOverride:
    """Admin-mediated claim and unclaim.

    Admin writes are last-write-wins against self-service claims: each
    attempt compares against the owner it just read and re-reads on a
    miss, up to ``max_attempts`` times.
    """

    def __init__(
        self,
        records: RecordRepository,
        audit: AuditRepository,
        identities: IdentityRepository,
        match_cache: MatchCache | None = None,
        reassignment_policy: ReassignmentPolicy = ReassignmentPolicy.ALLOW,
        audit_unclaims: bool = True,
        max_attempts: int = 3,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """Initialize admin override.

        Args:
            records: Record store
            audit: Audit store
            identities: Identity store for lookups
            match_cache: Optional cache to invalidate after transitions
            reassignment_policy: Whether force-claim may replace an owner
            audit_unclaims: Whether unclaims also write audit entries
            max_attempts: Compare-and-set attempts before ClaimConflict
            now: Clock, injectable for tests
        """
        self._records = records
        self._audit = audit
        self._identities = identities
        self._cache = match_cache
        self._policy = ReassignmentPolicy(reassignment_policy)
        self._audit_unclaims = audit_unclaims
        self._max_attempts = max_attempts
        self._now = now

    def _invalidate(self, *identity_ids: str | None) -> None:
        if not self._cache:
            return
        for identity_id in identity_ids:
            if identity_id:
                self._cache.invalidate(identity_id)

    async def search_identities(self, query: str, limit: int = 5) -> list[Identity]:
        """Find identities whose email contains ``query`` (case-insensitive)."""
        return await self._identities.search_by_email(query, limit=limit)

    @retry_transient(attempts=settings.store_retry_attempts)
    async def force_claim(
        self,
        admin: Identity | None,
        target_identity_id: str,
        ref: RecordRef,
        notes: str | None = None,
    ) -> ClaimAuditEntry:
        """Link a record to an identity without confidence gating.

        Args:
            admin: Admin performing the operation
            target_identity_id: Identity that will own the record
            ref: Record to claim
            notes: Optional note for the audit entry

        Returns:
            The admin_manual audit entry

        Raises:
            AdminAttributionMissing: No admin identity
            NotFound: Target identity or record does not exist
            AlreadyClaimed: Target already holds the record, or the record is
                held and the policy requires an explicit unclaim first
            ClaimConflict: Ownership kept changing underneath
            AuditWriteFailed: Audit append failed; change rolled back
        """
        admin = _require_admin(admin)
        target = await self._identities.get(target_identity_id)
        if target is None:
            raise NotFound(f"Identity {target_identity_id} not found")

        for attempt in range(1, self._max_attempts + 1):
            record = await self._records.get(ref)
            if record is None:
                raise NotFound(f"Record {ref} not found", record_id=ref.id)

            previous = record.owner_link
            if previous == target.id:
                raise AlreadyClaimed(
                    f"Record {ref} is already held by {target.id}", record_id=ref.id
                )
            if previous and self._policy == ReassignmentPolicy.REQUIRE_UNCLAIM:
                raise AlreadyClaimed(
                    f"Record {ref} is held by {previous}; unclaim it first",
                    record_id=ref.id,
                )

            entry_notes = notes
            if previous:
                reassigned = f"reassigned from {previous}"
                entry_notes = f"{notes} ({reassigned})" if notes else reassigned

            now = self._now()
            entry = ClaimAuditEntry(
                record_kind=ref.kind,
                record_id=ref.id,
                action=ClaimAction.CLAIM,
                claimed_by_identity_id=target.id,
                method=ClaimMethod.ADMIN_MANUAL,
                admin_assisted=True,
                admin_identity_id=admin.id,
                claimed_at=now,
                notes=entry_notes,
            )
            if await apply_transition(
                self._records,
                self._audit,
                snapshot=record,
                new_owner=target.id,
                entry=entry,
                claimed_at=now,
            ):
                self._invalidate(target.id, previous)
                logger.info(
                    "admin force-claim",
                    admin_id=admin.id,
                    target_id=target.id,
                    previous_owner=previous,
                    record=str(ref),
                )
                return entry
            logger.info("admin force-claim retrying", record=str(ref), attempt=attempt)

        raise ClaimConflict(f"Record {ref} kept changing during force-claim")

    @retry_transient(attempts=settings.store_retry_attempts)
    async def unclaim(
        self,
        admin: Identity | None,
        ref: RecordRef,
        notes: str | None = None,
    ) -> ClaimAuditEntry | None:
        """Release a record regardless of who holds it.

        Returns:
            The admin_manual unclaim entry, or None when unclaims are not audited

        Raises:
            AdminAttributionMissing: No admin identity
            NotFound: Record does not exist
            NotClaimed: Record has no owner
            ClaimConflict: Ownership kept changing underneath
            AuditWriteFailed: Audit append failed; change rolled back
        """
        admin = _require_admin(admin)
        for attempt in range(1, self._max_attempts + 1):
            record = await self._records.get(ref)
            if record is None:
                raise NotFound(f"Record {ref} not found", record_id=ref.id)
            previous = record.owner_link
            if previous is None:
                raise NotClaimed(f"Record {ref} is not claimed", record_id=ref.id)

            entry = None
            if self._audit_unclaims:
                entry = ClaimAuditEntry(
                    record_kind=ref.kind,
                    record_id=ref.id,
                    action=ClaimAction.UNCLAIM,
                    claimed_by_identity_id=previous,
                    method=ClaimMethod.ADMIN_MANUAL,
                    admin_assisted=True,
                    admin_identity_id=admin.id,
                    claimed_at=self._now(),
                    notes=notes,
                )
            if await apply_transition(
                self._records,
                self._audit,
                snapshot=record,
                new_owner=None,
                entry=entry,
                claimed_at=None,
            ):
                self._invalidate(previous)
                logger.info(
                    "admin unclaim",
                    admin_id=admin.id,
                    previous_owner=previous,
                    record=str(ref),
                )
                return entry
            logger.info("admin unclaim retrying", record=str(ref), attempt=attempt)

        raise ClaimConflict(f"Record {ref} kept changing during unclaim")

    async def bulk_update(
        self,
        admin: Identity | None,
        items: list[BulkItem],
    ) -> list[BulkItemResult]:
        """Apply claims/unclaims item by item.

        Each item runs as its own single-item operation; one failing item
        does not stop the rest.

        Raises:
            AdminAttributionMissing: No admin identity (checked before any item)
        """
        admin = _require_admin(admin)
        results: list[BulkItemResult] = []
        for item in items:
            try:
                if item.action == ClaimAction.CLAIM:
                    entry = await self.force_claim(
                        admin, item.target_identity_id or "", item.ref, item.notes
                    )
                else:
                    entry = await self.unclaim(admin, item.ref, item.notes)
                results.append(
                    BulkItemResult(
                        ref=item.ref, action=item.action, success=True, entry=entry
                    )
                )
            except ClaimError as e:
                results.append(
                    BulkItemResult(
                        ref=item.ref,
                        action=item.action,
                        success=False,
                        error_code=e.code,
                        error_message=e.message,
                    )
                )

        failed = sum(1 for r in results if not r.success)
        logger.info(
            "admin bulk update",
            admin_id=admin.id,
            items=len(items),
            failed=failed,
        )
        return results
