"""Result types returned by the use cases.

Every expected domain outcome is one of these frozen dataclasses; callers
dispatch with isinstance. Only storage faults are raised (see StoreError).
"""

from dataclasses import dataclass
from datetime import date, datetime

from pairbook.domain import Invitation, Post

# --- Invitations ---


@dataclass(frozen=True)
class InvitationIssued:
    code: str
    created_at: datetime


@dataclass(frozen=True)
class Valid:
    invitation: Invitation


@dataclass(frozen=True)
class InvitationNotFound:
    code: str | None


@dataclass(frozen=True)
class SelfAccept:
    code: str


@dataclass(frozen=True)
class CreatorAlreadyPaired:
    code: str
    creator_id: int


@dataclass(frozen=True)
class GenerationExhausted:
    attempts: int


# --- Pairing ---


@dataclass(frozen=True)
class Paired:
    relationship_id: int
    user1_id: int
    user2_id: int


@dataclass(frozen=True)
class AlreadyPaired:
    user_id: int


# --- Lifecycle ---


@dataclass(frozen=True)
class NoActiveRelationship:
    user_id: int


@dataclass(frozen=True)
class NoEndedRelationship:
    user_id: int


@dataclass(frozen=True)
class Ended:
    relationship_id: int
    ended_at: datetime
    permanent_deletion_at: datetime


@dataclass(frozen=True)
class PendingPartnerApproval:
    relationship_id: int
    requested_by: int
    already_requested: bool = False


@dataclass(frozen=True)
class Resumed:
    relationship_id: int


@dataclass(frozen=True)
class GracePeriodExpired:
    relationship_id: int
    permanent_deletion_at: datetime


@dataclass(frozen=True)
class ResumeCancelled:
    relationship_id: int


@dataclass(frozen=True)
class NoPendingResume:
    user_id: int


@dataclass(frozen=True)
class Forbidden:
    reason: str


@dataclass(frozen=True)
class ResumeRequest:
    requested_by: int
    requested_at: datetime | None


@dataclass(frozen=True)
class RelationshipView:
    """The caller's relationship as seen from their side."""

    id: int
    partner_id: int
    status: str
    start_date: date | None
    created_at: datetime
    permanent_deletion_at: datetime | None = None
    resume_request: ResumeRequest | None = None


@dataclass(frozen=True)
class StartDateUpdated:
    relationship_id: int
    start_date: date


@dataclass(frozen=True)
class InvalidStartDate:
    reason: str


# --- Posts ---


@dataclass(frozen=True)
class PostCreated:
    post: Post


@dataclass(frozen=True)
class InvalidPost:
    reason: str


@dataclass(frozen=True)
class PostDeleted:
    post_id: int


@dataclass(frozen=True)
class PostNotFound:
    post_id: int


@dataclass(frozen=True)
class WrongRelationship:
    post_id: int
