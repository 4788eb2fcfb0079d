"""Candidate search over unclaimed records and pending submissions.

For one identity, scores every unclaimed participant and project plus
every pending submission from the recent window, keeps those above the
per-universe minimum and returns them ordered best-first.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from claimlink.identity.confidence import ConfidenceScorer, Score, emails_match
from claimlink.identity.schemas import (
    CandidateSearchResult,
    Identity,
    MatchCandidate,
    Participant,
    Project,
    RecordKind,
    RecordRef,
)
from claimlink.repositories.record_repo import RecordRepository
from claimlink.repositories.submission_repo import SubmissionRepository

logger = structlog.get_logger()

CLAIMABLE_KINDS = (RecordKind.PARTICIPANT, RecordKind.PROJECT)
_EPOCH = datetime.min.replace(tzinfo=UTC)


class CandidateSearch:
    """Finds and ranks records an identity could claim.

    Idempotent and side-effect free. Returns empty results when nothing
    matches; store failures propagate.
    """

    def __init__(
        self,
        records: RecordRepository,
        submissions: SubmissionRepository,
        scorer: ConfidenceScorer,
        record_min_confidence: int = 50,
        submission_min_confidence: int = 60,
        self_service_threshold: int = 80,
        submission_window: timedelta = timedelta(days=30),
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """Initialize search with stores and thresholds.

        Args:
            records: Participant/project store
            submissions: Submission store
            scorer: Confidence scorer
            record_min_confidence: Minimum score kept for records
            submission_min_confidence: Minimum score kept for submissions
            self_service_threshold: Score at which a record is claimable
            submission_window: How far back pending submissions are considered
            now: Clock, injectable for tests
        """
        self._records = records
        self._submissions = submissions
        self._scorer = scorer
        self._record_min = record_min_confidence
        self._submission_min = submission_min_confidence
        self._threshold = self_service_threshold
        self._window = submission_window
        self._now = now

    def is_claimable(
        self,
        identity: Identity,
        record: Participant | Project,
        score: Score,
    ) -> bool:
        """Whether a self-service claim on this record would be accepted."""
        if record.is_claimed:
            return False
        return (
            emails_match(record.contact_email, identity.email)
            or score.confidence >= self._threshold
        )

    async def search(self, identity: Identity) -> CandidateSearchResult:
        """Run both searches for an identity.

        Args:
            identity: Authenticated identity

        Returns:
            CandidateSearchResult with ordered record and submission candidates
        """
        records = await self.search_records(identity)
        submissions = await self.search_submissions(identity)
        logger.info(
            "candidate search completed",
            identity_id=identity.id,
            records=len(records),
            submissions=len(submissions),
        )
        return CandidateSearchResult(
            identity_id=identity.id,
            records=tuple(records),
            submissions=tuple(submissions),
            searched_at=self._now(),
        )

    async def search_records(self, identity: Identity) -> list[MatchCandidate]:
        """Score unclaimed participants and projects.

        Returns:
            Candidates with confidence >= record minimum, highest first
        """
        candidates: list[MatchCandidate] = []
        for kind in CLAIMABLE_KINDS:
            for record in await self._records.list_unclaimed(kind):
                score = self._scorer.score(identity, record, kind)
                if score.confidence < self._record_min:
                    continue
                candidates.append(
                    MatchCandidate(
                        target_ref=RecordRef(kind=kind, id=record.id),
                        title=record.name,
                        confidence=score.confidence,
                        matched_criteria=score.criteria,
                        claimable=self.is_claimable(identity, record, score),
                    )
                )
        candidates.sort(
            key=lambda c: (-c.confidence, c.target_ref.kind.value, c.target_ref.id)
        )
        return candidates

    async def search_submissions(self, identity: Identity) -> list[MatchCandidate]:
        """Score pending submissions from the rolling window.

        Returns:
            Candidates with confidence >= submission minimum, ordered by
            confidence then recency
        """
        since = self._now() - self._window
        candidates: list[MatchCandidate] = []
        for submission in await self._submissions.list_pending_since(since):
            score = self._scorer.score(identity, submission, RecordKind.SUBMISSION)
            if score.confidence < self._submission_min:
                continue
            candidates.append(
                MatchCandidate(
                    target_ref=RecordRef(kind=RecordKind.SUBMISSION, id=submission.id),
                    title=submission.title,
                    confidence=score.confidence,
                    matched_criteria=score.criteria,
                    claimable=False,
                    created_at=submission.created_at,
                )
            )
        candidates.sort(
            key=lambda c: (c.confidence, c.created_at or _EPOCH),
            reverse=True,
        )
        return candidates
