"""Ownership transition with audit write and compensating rollback.

The record store and the audit store are separate tables written by
separate statements. A transition is therefore applied as:
1. compare-and-set owner_link on the record
2. append the audit entry
3. if step 2 fails, restore the record snapshot and raise AuditWriteFailed
"""

from datetime import datetime

import structlog

from claimlink.errors import AuditWriteFailed
from claimlink.identity.schemas import ClaimAuditEntry, Participant, Project
from claimlink.repositories.audit_repo import AuditRepository
from claimlink.repositories.record_repo import RecordRepository

logger = structlog.get_logger()


async def apply_transition(
    records: RecordRepository,
    audit: AuditRepository,
    snapshot: Participant | Project,
    new_owner: str | None,
    entry: ClaimAuditEntry | None,
    claimed_at: datetime | None,
) -> bool:
    """Move ownership from ``snapshot.owner_link`` to ``new_owner``.

    Args:
        records: Record store
        audit: Audit store
        snapshot: Record as read before the decision was made
        new_owner: Identity id to install, or None to release
        entry: Audit entry to append, or None when the transition is not audited
        claimed_at: Timestamp stored on the record with the new owner

    Returns:
        True if applied, False if ownership changed since ``snapshot`` was read

    Raises:
        AuditWriteFailed: Audit append failed; the record was restored
    """
    applied = await records.compare_and_set_owner(
        snapshot.ref,
        expected_owner=snapshot.owner_link,
        new_owner=new_owner,
        claimed_at=claimed_at,
    )
    if not applied:
        return False
    if entry is None:
        return True

    try:
        await audit.append(entry)
    except Exception as e:
        restored = await _compensate(records, snapshot, new_owner)
        logger.error(
            "audit write failed",
            record=str(snapshot.ref),
            entry_id=entry.id,
            restored=restored,
            error=str(e),
        )
        raise AuditWriteFailed(
            f"Audit write failed for {snapshot.ref}; ownership change rolled back",
            record_id=snapshot.id,
            rollback_succeeded=restored,
        ) from e
    return True


async def _compensate(
    records: RecordRepository,
    snapshot: Participant | Project,
    installed_owner: str | None,
) -> bool:
    try:
        return await records.restore_ownership(snapshot, expected_owner=installed_owner)
    except Exception as e:
        logger.error(
            "ownership rollback failed",
            record=str(snapshot.ref),
            error=str(e),
        )
        return False
