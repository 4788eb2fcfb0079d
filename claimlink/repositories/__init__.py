"""Repository layer for data persistence.

Provides repository classes over the record, submission, identity and
audit tables. Repositories encapsulate data access logic and provide a
clean interface for the claim services.
"""

from claimlink.repositories.audit_repo import AuditRepository
from claimlink.repositories.identity_repo import IdentityRepository
from claimlink.repositories.record_repo import RecordRepository
from claimlink.repositories.submission_repo import SubmissionRepository

__all__ = [
    "AuditRepository",
    "IdentityRepository",
    "RecordRepository",
    "SubmissionRepository",
]
