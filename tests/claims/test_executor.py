"""Tests for ClaimExecutor."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from claimlink.claims.executor import ClaimExecutor
from claimlink.errors import (
    AlreadyClaimed,
    AuditWriteFailed,
    ClaimConflict,
    ConfidenceTooLow,
    NotClaimed,
    NotFound,
    NotOwner,
    TransientStoreError,
)
from claimlink.identity.confidence import ConfidenceScorer
from claimlink.identity.match_cache import MatchCache
from claimlink.identity.schemas import (
    ClaimAction,
    ClaimMethod,
    Identity,
    MatchCriterion,
    Participant,
    Project,
    RecordKind,
    RecordRef,
)
from claimlink.repositories.audit_repo import AuditRepository
from claimlink.repositories.record_repo import RecordRepository

P1 = RecordRef(kind=RecordKind.PARTICIPANT, id="p-1")
PR1 = RecordRef(kind=RecordKind.PROJECT, id="pr-1")


@pytest.fixture
def mock_cache() -> MagicMock:
    """MatchCache spy."""
    return MagicMock(spec=MatchCache)


@pytest.fixture
def executor(record_repo, audit_repo, mock_cache) -> ClaimExecutor:
    """Executor over real temp-file repositories."""
    return ClaimExecutor(
        records=record_repo,
        audit=audit_repo,
        scorer=ConfidenceScorer(),
        match_cache=mock_cache,
    )


@pytest.fixture
async def email_record(record_repo: RecordRepository) -> Participant:
    """Participant whose contact email is Anna's, differently cased."""
    record = Participant(
        id="p-1",
        name="A. Berg",
        contact_email="Anna.Berg@Example.com",
        match_confidence=90,
        match_criteria=["email"],
    )
    await record_repo.add(record)
    return record


@pytest.fixture
async def name_only_project(record_repo: RecordRepository) -> Project:
    """Project matching Anna by name only (confidence 70)."""
    record = Project(id="pr-1", name="Anna Berg")
    await record_repo.add(record)
    return record


class TestClaim:
    """Tests for self-service claims."""

    @pytest.mark.asyncio
    async def test_email_match_claims(
        self, executor, record_repo, audit_repo, email_record, anna, mock_cache
    ):
        """Matching contact email links the record and writes one entry."""
        before = datetime.now(UTC)

        entry = await executor.claim(anna, P1)

        record = await record_repo.get(P1)
        assert record.owner_link == "user-anna"
        assert record.claimed_at >= before
        assert record.match_confidence is None
        assert entry.method == ClaimMethod.EMAIL_MATCH
        assert entry.action == ClaimAction.CLAIM
        assert entry.admin_assisted is False
        assert entry.claimed_by_identity_id == "user-anna"
        assert entry.claimed_at >= before
        assert await audit_repo.list_for_record("p-1") == [entry]
        mock_cache.invalidate.assert_called_once_with("user-anna")

    @pytest.mark.asyncio
    async def test_confidence_path_records_score(
        self, executor, record_repo, anna
    ):
        """Without an email match, 80+ confidence claims and notes the score."""
        await record_repo.add(
            Project(id="pr-1", name="Anna Berg", contact_phone="+4791234567")
        )

        entry = await executor.claim(anna, PR1)

        assert entry.notes == "confidence 100 (name, phone)"
        assert (await record_repo.get(PR1)).owner_link == "user-anna"

    @pytest.mark.asyncio
    async def test_caller_notes_kept(self, executor, email_record, anna):
        """Caller-supplied notes are stored as given."""
        entry = await executor.claim(anna, P1, notes="that's me")

        assert entry.notes == "that's me"

    @pytest.mark.asyncio
    async def test_confidence_too_low(
        self, executor, record_repo, audit_repo, name_only_project, anna
    ):
        """Below threshold without email match is rejected without side effects."""
        with pytest.raises(ConfidenceTooLow) as exc_info:
            await executor.claim(anna, PR1)

        assert exc_info.value.context["confidence"] == 70
        assert (await record_repo.get(PR1)).owner_link is None
        assert await audit_repo.count() == 0

    @pytest.mark.asyncio
    async def test_already_claimed(self, executor, record_repo, anna):
        """Held records cannot be claimed, even with an email match."""
        await record_repo.add(
            Participant(
                id="p-1",
                name="Anna Berg",
                contact_email="anna.berg@example.com",
                owner_link="user-other",
            )
        )

        with pytest.raises(AlreadyClaimed):
            await executor.claim(anna, P1)

    @pytest.mark.asyncio
    async def test_missing_record(self, executor, anna):
        """Unknown records raise NotFound."""
        with pytest.raises(NotFound):
            await executor.claim(anna, RecordRef(kind=RecordKind.PROJECT, id="nope"))

    @pytest.mark.asyncio
    async def test_submission_not_claimable(self, executor, anna):
        """Submissions cannot be self-claimed."""
        with pytest.raises(NotFound):
            await executor.claim(anna, RecordRef(kind=RecordKind.SUBMISSION, id="s-1"))

    @pytest.mark.asyncio
    async def test_concurrent_claims_one_winner(
        self, executor, record_repo, audit_repo
    ):
        """Two identities racing for one record: exactly one succeeds."""
        await record_repo.add(
            Participant(id="p-1", name="Shared", contact_email="team@example.com")
        )
        first = Identity(id="user-a", email="team@example.com")
        second = Identity(id="user-b", email="team@example.com")

        results = await asyncio.gather(
            executor.claim(first, P1),
            executor.claim(second, P1),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, AlreadyClaimed)]
        assert len(winners) == 1
        assert len(losers) == 1
        record = await record_repo.get(P1)
        assert record.owner_link == winners[0].claimed_by_identity_id
        assert await audit_repo.count("p-1") == 1


class TestAuditFailure:
    """Tests for the compensating rollback."""

    @pytest.mark.asyncio
    async def test_claim_rolled_back(
        self, executor, record_repo, audit_repo, email_record, anna, mock_cache
    ):
        """A failed audit append restores the record and raises."""
        audit_repo.append = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(AuditWriteFailed) as exc_info:
            await executor.claim(anna, P1)

        record = await record_repo.get(P1)
        assert exc_info.value.context["rollback_succeeded"] is True
        assert record.owner_link is None
        assert record.claimed_at is None
        assert record.match_confidence == 90
        assert record.match_criteria == ["email"]
        mock_cache.invalidate.assert_not_called()

    @pytest.mark.asyncio
    async def test_unclaim_rolled_back(self, executor, record_repo, audit_repo, anna):
        """A failed audit append on release puts the owner back."""
        await record_repo.add(
            Participant(id="p-1", name="Anna Berg", owner_link="user-anna")
        )
        audit_repo.append = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(AuditWriteFailed):
            await executor.unclaim(anna, P1)

        assert (await record_repo.get(P1)).owner_link == "user-anna"


class TestUnclaim:
    """Tests for self-service release."""

    @pytest.mark.asyncio
    async def test_unclaim_then_reclaim(
        self, executor, record_repo, audit_repo, email_record, anna
    ):
        """Release then claim again leaves a three-entry history."""
        await executor.claim(anna, P1)
        released = await executor.unclaim(anna, P1, notes="wrong profile")
        await executor.claim(anna, P1)

        history = await audit_repo.list_for_record("p-1")
        assert released.action == ClaimAction.UNCLAIM
        assert released.method == ClaimMethod.OWNER_RELEASE
        assert released.notes == "wrong profile"
        assert [e.action for e in history] == [
            ClaimAction.CLAIM,
            ClaimAction.UNCLAIM,
            ClaimAction.CLAIM,
        ]
        assert (await record_repo.get(P1)).owner_link == "user-anna"

    @pytest.mark.asyncio
    async def test_unclaim_clears_ownership(self, executor, record_repo, anna):
        """Release nulls owner and claim metadata."""
        await record_repo.add(
            Participant(
                id="p-1",
                name="Anna Berg",
                owner_link="user-anna",
                claimed_at=datetime(2026, 1, 1, tzinfo=UTC),
                match_confidence=80,
            )
        )

        await executor.unclaim(anna, P1)

        record = await record_repo.get(P1)
        assert record.owner_link is None
        assert record.claimed_at is None
        assert record.match_confidence is None

    @pytest.mark.asyncio
    async def test_not_owner(self, executor, record_repo, anna):
        """Only the holder may release a record."""
        await record_repo.add(
            Participant(id="p-1", name="Anna Berg", owner_link="user-other")
        )

        with pytest.raises(NotOwner):
            await executor.unclaim(anna, P1)

    @pytest.mark.asyncio
    async def test_not_claimed(self, executor, email_record, anna):
        """Releasing an unheld record fails."""
        with pytest.raises(NotClaimed):
            await executor.unclaim(anna, P1)

    @pytest.mark.asyncio
    async def test_unaudited_unclaim(self, record_repo, audit_repo, anna):
        """With unclaim auditing off, nothing is appended."""
        executor = ClaimExecutor(
            record_repo, audit_repo, ConfidenceScorer(), audit_unclaims=False
        )
        await record_repo.add(
            Participant(id="p-1", name="Anna Berg", owner_link="user-anna")
        )

        assert await executor.unclaim(anna, P1) is None
        assert await audit_repo.count() == 0

    @pytest.mark.asyncio
    async def test_conflict_when_owner_changes(self, anna):
        """A lost compare-and-set during release raises ClaimConflict."""
        records = MagicMock(spec=RecordRepository)
        records.get = AsyncMock(
            return_value=Participant(id="p-1", name="x", owner_link="user-anna")
        )
        records.compare_and_set_owner = AsyncMock(return_value=False)
        executor = ClaimExecutor(
            records, MagicMock(spec=AuditRepository), ConfidenceScorer()
        )

        with pytest.raises(ClaimConflict):
            await executor.unclaim(anna, P1)


class TestCanClaim:
    """Tests for the dry-run eligibility check."""

    @pytest.mark.asyncio
    async def test_email_match(self, executor, email_record, anna):
        """Email match is eligible and reports the criterion."""
        result = await executor.can_claim(anna, P1)

        assert result.eligible
        assert result.reason == "email_match"
        assert MatchCriterion.EMAIL in result.matched_criteria

    @pytest.mark.asyncio
    async def test_too_low(self, executor, name_only_project, anna):
        """Name-only match is not enough."""
        result = await executor.can_claim(anna, PR1)

        assert not result.eligible
        assert result.reason == "confidence_too_low"
        assert result.confidence == 70

    @pytest.mark.asyncio
    async def test_dry_run_does_not_mutate(
        self, executor, record_repo, audit_repo, email_record, anna
    ):
        """can_claim writes nothing."""
        await executor.can_claim(anna, P1)

        assert (await record_repo.get(P1)).owner_link is None
        assert await audit_repo.count() == 0


class TestTransientRetry:
    """Tests for retrying transient store failures."""

    @pytest.fixture
    def mock_records(self) -> MagicMock:
        """Record store whose first read times out."""
        records = MagicMock(spec=RecordRepository)
        records.get = AsyncMock(
            side_effect=[
                TransientStoreError("timeout"),
                Participant(id="p-1", name="x", contact_email="anna.berg@example.com"),
            ]
        )
        records.compare_and_set_owner = AsyncMock(return_value=True)
        return records

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, mock_records, anna):
        """A transient failure is retried from the top."""
        audit = MagicMock(spec=AuditRepository)
        audit.append = AsyncMock()
        executor = ClaimExecutor(mock_records, audit, ConfidenceScorer())

        entry = await executor.claim(anna, P1)

        assert entry.claimed_by_identity_id == "user-anna"
        assert mock_records.get.await_count == 2
        audit.append.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, anna):
        """Persistent transient failures surface after the last attempt."""
        records = MagicMock(spec=RecordRepository)
        records.get = AsyncMock(side_effect=TransientStoreError("timeout"))
        executor = ClaimExecutor(
            records, MagicMock(spec=AuditRepository), ConfidenceScorer()
        )

        with pytest.raises(TransientStoreError):
            await executor.claim(anna, P1)

        assert records.get.await_count == 3
