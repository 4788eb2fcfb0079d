"""Ownership transitions for claimable records.

This module provides:
- ClaimExecutor: self-service claim, eligibility check and unclaim
- AdminOverride: identity search, force-claim, unclaim and bulk update
- apply_transition: compare-and-set plus audit append with rollback
"""

from claimlink.claims.admin import (
    AdminOverride,
    BulkItem,
    BulkItemResult,
    ReassignmentPolicy,
)
from claimlink.claims.executor import ClaimExecutor
from claimlink.claims.transitions import apply_transition

__all__ = [
    "AdminOverride",
    "BulkItem",
    "BulkItemResult",
    "ClaimExecutor",
    "ReassignmentPolicy",
    "apply_transition",
]
