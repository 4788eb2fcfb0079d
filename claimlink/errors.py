"""Claim error taxonomy.

Every error carries a stable ``code`` so API consumers can present
distinct outcomes without parsing messages.
"""


class ClaimError(Exception):
    """Base class for claim and admin override failures."""

    code = "claim_error"

    def __init__(self, message: str, **context: object):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFound(ClaimError):
    """Identity or record does not exist."""

    code = "not_found"


class AlreadyClaimed(ClaimError):
    """Record already has an owner."""

    code = "already_claimed"


class ConfidenceTooLow(ClaimError):
    """Self-service claim without email match and below threshold."""

    code = "confidence_too_low"


class AdminAttributionMissing(ClaimError):
    """Admin operation attempted without an admin identity."""

    code = "admin_attribution_missing"


class AuditWriteFailed(ClaimError):
    """Audit append failed; the ownership change was rolled back."""

    code = "audit_write_failed"


class TransientStoreError(ClaimError):
    """Network or timeout failure talking to the store."""

    code = "transient_store_error"


class NotClaimed(ClaimError):
    """Unclaim attempted on a record without an owner."""

    code = "not_claimed"


class NotOwner(ClaimError):
    """Self-service unclaim by an identity that does not hold the record."""

    code = "not_owner"


class ClaimConflict(ClaimError):
    """Record ownership changed underneath the operation."""

    code = "claim_conflict"
