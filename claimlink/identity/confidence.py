"""Confidence scoring between an identity and a candidate record.

Scores are additive and clipped to 0..100:
- exact email match (case-insensitive) dominates on its own
- name similarity adds a high or medium bonus
- exact phone match
- phone number embedded in a free-text location (weak legacy signal)
- participants only: identity name words found among skills/interests

Submissions use a separate weight table because the name signal comes
from the free-text ``submitted_by`` field.
"""

from collections.abc import Callable
from dataclasses import dataclass

from claimlink.identity.schemas import (
    Identity,
    MatchCriterion,
    Participant,
    Project,
    RecordKind,
    Submission,
)
from claimlink.identity.similarity import NameMetric, get_metric

HIGH_NAME_SIMILARITY = 0.8
MEDIUM_NAME_SIMILARITY = 0.6

Candidate = Participant | Project | Submission


@dataclass(frozen=True)
class Weights:
    """Points awarded per matching signal."""

    email: int
    name_high: int
    name_medium: int
    phone: int
    location: int
    shared_word: int = 0


RECORD_WEIGHTS = Weights(
    email=100, name_high=70, name_medium=50, phone=60, location=40, shared_word=20
)
SUBMISSION_WEIGHTS = Weights(
    email=100, name_high=80, name_medium=60, phone=70, location=50
)


@dataclass(frozen=True)
class Score:
    """Clipped confidence with the criteria that produced it."""

    confidence: int
    criteria: frozenset[MatchCriterion]


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def emails_match(a: str | None, b: str | None) -> bool:
    """Case-insensitive email comparison; blanks never match."""
    na, nb = _norm(a), _norm(b)
    return bool(na) and na == nb


def _phones_match(a: str | None, b: str | None) -> bool:
    na, nb = (a or "").strip(), (b or "").strip()
    return bool(na) and na == nb


def _candidate_name(candidate: Candidate) -> str | None:
    if isinstance(candidate, Submission):
        return candidate.submitted_by
    return candidate.name


def _shared_words(identity: Identity, participant: Participant) -> int:
    name_words = set(_norm(identity.full_name).split())
    if not name_words:
        return 0
    vocabulary: set[str] = set()
    for entry in [*participant.skills, *participant.interests]:
        vocabulary.update(_norm(entry).split())
    return len(name_words & vocabulary)


class ConfidenceScorer:
    """Pure, deterministic scorer. Never raises for well-formed models."""

    def __init__(self, name_metric: NameMetric | str = NameMetric.TOKEN_SORT):
        self._similarity: Callable[[str, str], float] = get_metric(name_metric)

    def score(
        self,
        identity: Identity,
        candidate: Candidate,
        kind: RecordKind | None = None,
    ) -> Score:
        """Score a candidate for an identity.

        Args:
            identity: Authenticated identity
            candidate: Participant, project or submission
            kind: Record-type tag; inferred from the candidate when omitted

        Returns:
            Score with confidence in [0, 100] and contributing criteria
        """
        if kind is None:
            kind = (
                RecordKind.SUBMISSION
                if isinstance(candidate, Submission)
                else candidate.kind
            )
        weights = (
            SUBMISSION_WEIGHTS if kind == RecordKind.SUBMISSION else RECORD_WEIGHTS
        )

        points = 0
        criteria: set[MatchCriterion] = set()

        if emails_match(candidate.contact_email, identity.email):
            points += weights.email
            criteria.add(MatchCriterion.EMAIL)

        candidate_name = _candidate_name(candidate)
        if identity.full_name and candidate_name:
            similarity = self._similarity(identity.full_name, candidate_name)
            if similarity > HIGH_NAME_SIMILARITY:
                points += weights.name_high
                criteria.add(MatchCriterion.NAME)
            elif similarity > MEDIUM_NAME_SIMILARITY:
                points += weights.name_medium
                criteria.add(MatchCriterion.NAME)

        if _phones_match(candidate.contact_phone, identity.phone):
            points += weights.phone
            criteria.add(MatchCriterion.PHONE)

        phone = (identity.phone or "").strip()
        if phone and candidate.location and phone in candidate.location:
            points += weights.location
            criteria.add(MatchCriterion.LOCATION)

        if kind == RecordKind.PARTICIPANT and isinstance(candidate, Participant):
            shared = _shared_words(identity, candidate)
            if shared:
                points += shared * weights.shared_word
                criteria.add(MatchCriterion.SKILLS)

        return Score(confidence=max(0, min(points, 100)), criteria=frozenset(criteria))


def calculate_confidence(
    identity: Identity,
    candidate: Candidate,
    kind: RecordKind | None = None,
    name_metric: NameMetric | str = NameMetric.TOKEN_SORT,
) -> int:
    """Convenience wrapper returning only the clipped confidence."""
    return ConfidenceScorer(name_metric).score(identity, candidate, kind).confidence


def match_criteria(
    identity: Identity,
    candidate: Candidate,
    kind: RecordKind | None = None,
    name_metric: NameMetric | str = NameMetric.TOKEN_SORT,
) -> frozenset[MatchCriterion]:
    """Convenience wrapper returning only the contributing criteria."""
    return ConfidenceScorer(name_metric).score(identity, candidate, kind).criteria
