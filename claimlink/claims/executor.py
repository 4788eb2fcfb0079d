"""Self-service claim and unclaim.

A claim links an unclaimed record to the requesting identity when the
record's contact email matches the identity's email, or when the record
scores at or above the self-service threshold for that identity. The
record is always re-read from the store; the match cache is never
consulted for the decision.
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from claimlink.claims.transitions import apply_transition
from claimlink.config import settings
from claimlink.db.retry import retry_transient
from claimlink.errors import (
    AlreadyClaimed,
    ClaimConflict,
    ConfidenceTooLow,
    NotClaimed,
    NotFound,
    NotOwner,
)
from claimlink.identity.confidence import ConfidenceScorer, emails_match
from claimlink.identity.match_cache import MatchCache
from claimlink.identity.schemas import (
    ClaimAction,
    ClaimAuditEntry,
    ClaimMethod,
    Eligibility,
    Identity,
    MatchCriterion,
    Participant,
    Project,
    RecordRef,
)
from claimlink.repositories.audit_repo import AuditRepository
from claimlink.repositories.record_repo import RecordRepository

logger = structlog.get_logger()


class ClaimExecutor:
    """Executes self-service ownership transitions.

    Claims use compare-and-set on ``owner_link IS NULL``: of two identities
    racing for one record exactly one wins, the other gets AlreadyClaimed.
    Every successful transition writes one audit entry, or is rolled back.
    """

    def __init__(
        self,
        records: RecordRepository,
        audit: AuditRepository,
        scorer: ConfidenceScorer,
        self_service_threshold: int = 80,
        match_cache: MatchCache | None = None,
        audit_unclaims: bool = True,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """Initialize executor.

        Args:
            records: Record store
            audit: Audit store
            scorer: Confidence scorer for the non-email path
            self_service_threshold: Minimum confidence without an email match
            match_cache: Optional cache to invalidate after transitions
            audit_unclaims: Whether unclaims also write audit entries
            now: Clock, injectable for tests
        """
        self._records = records
        self._audit = audit
        self._scorer = scorer
        self._threshold = self_service_threshold
        self._cache = match_cache
        self._audit_unclaims = audit_unclaims
        self._now = now

    async def _load(self, ref: RecordRef) -> Participant | Project:
        record = await self._records.get(ref)
        if record is None:
            raise NotFound(f"Record {ref} not found", record_id=ref.id)
        return record

    def _evaluate(
        self, identity: Identity, record: Participant | Project
    ) -> Eligibility:
        if record.is_claimed:
            return Eligibility(eligible=False, reason="already_claimed")
        score = self._scorer.score(identity, record, record.kind)
        if emails_match(record.contact_email, identity.email):
            return Eligibility(
                eligible=True,
                reason="email_match",
                confidence=score.confidence,
                matched_criteria=score.criteria | {MatchCriterion.EMAIL},
            )
        if score.confidence >= self._threshold:
            return Eligibility(
                eligible=True,
                reason="confidence_match",
                confidence=score.confidence,
                matched_criteria=score.criteria,
            )
        return Eligibility(
            eligible=False,
            reason="confidence_too_low",
            confidence=score.confidence,
            matched_criteria=score.criteria,
        )

    async def can_claim(self, identity: Identity, ref: RecordRef) -> Eligibility:
        """Dry-run a self-service claim without mutating anything.

        Raises:
            NotFound: Record does not exist
        """
        record = await self._load(ref)
        return self._evaluate(identity, record)

    @retry_transient(attempts=settings.store_retry_attempts)
    async def claim(
        self,
        identity: Identity,
        ref: RecordRef,
        notes: str | None = None,
    ) -> ClaimAuditEntry:
        """Claim an unclaimed record for the requesting identity.

        Args:
            identity: Identity claiming the record
            ref: Record to claim
            notes: Optional free-text note stored on the audit entry

        Returns:
            The audit entry written for the claim

        Raises:
            NotFound: Record does not exist
            AlreadyClaimed: Record has an owner, or another claim won the race
            ConfidenceTooLow: No email match and confidence below threshold
            AuditWriteFailed: Audit append failed; claim rolled back
        """
        record = await self._load(ref)
        if record.is_claimed:
            raise AlreadyClaimed(f"Record {ref} is already claimed", record_id=ref.id)

        eligibility = self._evaluate(identity, record)
        if not eligibility.eligible:
            logger.info(
                "self-service claim rejected",
                identity_id=identity.id,
                record=str(ref),
                confidence=eligibility.confidence,
            )
            raise ConfidenceTooLow(
                f"Confidence {eligibility.confidence} is below "
                f"{self._threshold} and contact email does not match",
                record_id=ref.id,
                confidence=eligibility.confidence,
            )

        if eligibility.reason == "confidence_match" and not notes:
            criteria = ", ".join(sorted(c.value for c in eligibility.matched_criteria))
            notes = f"confidence {eligibility.confidence} ({criteria})"

        now = self._now()
        entry = ClaimAuditEntry(
            record_kind=ref.kind,
            record_id=ref.id,
            action=ClaimAction.CLAIM,
            claimed_by_identity_id=identity.id,
            method=ClaimMethod.EMAIL_MATCH,
            admin_assisted=False,
            claimed_at=now,
            notes=notes,
        )
        applied = await apply_transition(
            self._records,
            self._audit,
            snapshot=record,
            new_owner=identity.id,
            entry=entry,
            claimed_at=now,
        )
        if not applied:
            logger.info("claim race lost", identity_id=identity.id, record=str(ref))
            raise AlreadyClaimed(
                f"Record {ref} was claimed concurrently", record_id=ref.id
            )

        if self._cache:
            self._cache.invalidate(identity.id)
        logger.info(
            "record claimed",
            identity_id=identity.id,
            record=str(ref),
            reason=eligibility.reason,
            entry_id=entry.id,
        )
        return entry

    @retry_transient(attempts=settings.store_retry_attempts)
    async def unclaim(
        self,
        actor: Identity,
        ref: RecordRef,
        notes: str | None = None,
    ) -> ClaimAuditEntry | None:
        """Release a record held by the actor.

        Args:
            actor: Identity releasing the record; must be the current holder
            ref: Record to release
            notes: Optional note stored on the audit entry

        Returns:
            The audit entry, or None when unclaims are not audited

        Raises:
            NotFound: Record does not exist
            NotClaimed: Record has no owner
            NotOwner: Actor does not hold the record
            ClaimConflict: Ownership changed while releasing
            AuditWriteFailed: Audit append failed; release rolled back
        """
        record = await self._load(ref)
        if not record.is_claimed:
            raise NotClaimed(f"Record {ref} is not claimed", record_id=ref.id)
        if record.owner_link != actor.id:
            raise NotOwner(
                f"Record {ref} is held by another identity", record_id=ref.id
            )

        entry = None
        if self._audit_unclaims:
            entry = ClaimAuditEntry(
                record_kind=ref.kind,
                record_id=ref.id,
                action=ClaimAction.UNCLAIM,
                claimed_by_identity_id=actor.id,
                method=ClaimMethod.OWNER_RELEASE,
                claimed_at=self._now(),
                notes=notes,
            )
        applied = await apply_transition(
            self._records,
            self._audit,
            snapshot=record,
            new_owner=None,
            entry=entry,
            claimed_at=None,
        )
        if not applied:
            raise ClaimConflict(
                f"Record {ref} changed during unclaim", record_id=ref.id
            )

        if self._cache:
            self._cache.invalidate(actor.id)
        logger.info("record unclaimed", identity_id=actor.id, record=str(ref))
        return entry
