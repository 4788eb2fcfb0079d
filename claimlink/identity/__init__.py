"""Identity matching for claimable records.

This module provides:
- ConfidenceScorer: additive 0-100 scoring of an identity against a record
- Name similarity metrics (RapidFuzz token_sort, character overlap)
- CandidateSearch: ranked unclaimed records and pending submissions
- MatchCache: TTL-bound, single-flight memoization of search results
- Schemas for identities, records, candidates and audit entries
"""

from claimlink.identity.candidate_search import CandidateSearch
from claimlink.identity.confidence import (
    ConfidenceScorer,
    calculate_confidence,
    match_criteria,
)
from claimlink.identity.match_cache import MatchCache
from claimlink.identity.schemas import (
    CandidateSearchResult,
    ClaimAuditEntry,
    Identity,
    MatchCandidate,
    Participant,
    Project,
    RecordKind,
    RecordRef,
    Submission,
)
from claimlink.identity.similarity import NameMetric

__all__ = [
    "CandidateSearch",
    "CandidateSearchResult",
    "ClaimAuditEntry",
    "ConfidenceScorer",
    "Identity",
    "MatchCache",
    "MatchCandidate",
    "NameMetric",
    "Participant",
    "Project",
    "RecordKind",
    "RecordRef",
    "Submission",
    "calculate_confidence",
    "match_criteria",
]
