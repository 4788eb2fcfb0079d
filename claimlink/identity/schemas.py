"""Identity reconciliation schemas.

Defines identities, claimable records, submissions, match candidates and
audit entries.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class RecordKind(str, Enum):
    """Kind of record a candidate or claim refers to."""

    PARTICIPANT = "participant"
    PROJECT = "project"
    SUBMISSION = "submission"


class MatchCriterion(str, Enum):
    """Signal that contributed to a confidence score."""

    EMAIL = "email"
    NAME = "name"
    PHONE = "phone"
    LOCATION = "location"
    SKILLS = "skills"


class Identity(BaseModel):
    """Authenticated account supplied by the auth provider."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Auth provider user id")
    email: EmailStr = Field(description="Verified account email")
    full_name: str | None = Field(default=None)
    phone: str | None = Field(default=None)


class RecordRef(BaseModel):
    """Address of a single record."""

    model_config = ConfigDict(frozen=True)

    kind: RecordKind
    id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class _ClaimableBase(BaseModel):
    """Fields shared by every claimable record variant."""

    id: str
    name: str = Field(description="Participant name or project title")
    contact_email: str | None = None
    contact_phone: str | None = None
    location: str | None = None
    owner_link: str | None = Field(
        default=None, description="Identity id of the current holder"
    )
    claimed_at: datetime | None = None
    match_confidence: int | None = Field(default=None, ge=0, le=100)
    match_criteria: list[str] | None = None

    @property
    def is_claimed(self) -> bool:
        return self.owner_link is not None

    @property
    def ref(self) -> RecordRef:
        return RecordRef(kind=self.kind, id=self.id)  # type: ignore[attr-defined]


class Participant(_ClaimableBase):
    """Participant profile created before the person had an account."""

    kind: Literal[RecordKind.PARTICIPANT] = RecordKind.PARTICIPANT
    skills: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)


class Project(_ClaimableBase):
    """Project record created before its owner had an account."""

    kind: Literal[RecordKind.PROJECT] = RecordKind.PROJECT


ClaimableRecord = Annotated[Participant | Project, Field(discriminator="kind")]


class Submission(BaseModel):
    """Pending anonymous submission awaiting review."""

    id: str
    type: str = Field(description="project, participant, media or collaboration")
    title: str = ""
    content: dict[str, Any] = Field(default_factory=dict)
    contact_email: str | None = None
    contact_phone: str | None = None
    submitted_by: str | None = None
    location: str | None = None
    created_at: datetime
    status: str = "pending"


class MatchCandidate(BaseModel):
    """Scored candidate for an identity. Computed, never persisted."""

    model_config = ConfigDict(frozen=True)

    target_ref: RecordRef
    title: str
    confidence: int = Field(ge=0, le=100)
    matched_criteria: frozenset[MatchCriterion] = Field(default_factory=frozenset)
    claimable: bool = False
    created_at: datetime | None = None


class CandidateSearchResult(BaseModel):
    """Ordered candidates for one identity."""

    model_config = ConfigDict(frozen=True)

    identity_id: str
    records: tuple[MatchCandidate, ...] = ()
    submissions: tuple[MatchCandidate, ...] = ()
    searched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_empty(self) -> bool:
        return not self.records and not self.submissions


class ClaimAction(str, Enum):
    """Ownership transition recorded in the audit log."""

    CLAIM = "claim"
    UNCLAIM = "unclaim"


class ClaimMethod(str, Enum):
    """How an ownership transition was authorized."""

    EMAIL_MATCH = "email_match"
    ADMIN_MANUAL = "admin_manual"
    OWNER_RELEASE = "owner_release"


class ClaimAuditEntry(BaseModel):
    """Immutable record of a claim or unclaim.

    Entries are appended once and never updated. Admin entries must name
    the admin who performed them.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    record_kind: RecordKind
    record_id: str
    action: ClaimAction = ClaimAction.CLAIM
    claimed_by_identity_id: str = Field(
        description="Identity that gained (or released) ownership"
    )
    method: ClaimMethod
    admin_assisted: bool = False
    admin_identity_id: str | None = None
    claimed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    notes: str | None = None

    @model_validator(mode="after")
    def _admin_manual_needs_admin(self) -> "ClaimAuditEntry":
        if self.method == ClaimMethod.ADMIN_MANUAL and not self.admin_identity_id:
            msg = "admin_manual entries require admin_identity_id"
            raise ValueError(msg)
        return self


class Eligibility(BaseModel):
    """Outcome of a dry-run self-service claim check."""

    eligible: bool
    reason: str
    confidence: int = Field(default=0, ge=0, le=100)
    matched_criteria: frozenset[MatchCriterion] = Field(default_factory=frozenset)
