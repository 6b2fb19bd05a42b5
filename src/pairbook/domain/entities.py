"""Domain entities: Invitation, Relationship, and Post."""

import enum
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone

# Window after a relationship ends during which either member may resume it.
GRACE_PERIOD = timedelta(days=7)

POST_TEXT_MAX_LENGTH = 5000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RelationshipStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING_DELETION = "pending_deletion"


@dataclass(frozen=True)
class Invitation:
    """
    Single-use invite code a user shares out-of-band to pair with another account.
    Never expires; replaced only when its creator issues a new one.
    """

    id: int
    code: str
    created_by: int
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not self.code or not self.code.strip():
            raise ValueError("Invitation code must be non-empty.")


@dataclass(frozen=True)
class Relationship:
    """
    Exclusive pairing of two accounts.
    ended_at is set if and only if the relationship is pending deletion;
    resume_requested_by, when set, is one of the two members.
    """

    id: int
    user1_id: int
    user2_id: int
    status: RelationshipStatus = RelationshipStatus.ACTIVE
    start_date: date | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    ended_at: datetime | None = None
    resume_requested_by: int | None = None
    resume_requested_at: datetime | None = None

    def __post_init__(self):
        if self.user1_id == self.user2_id:
            raise ValueError("Relationship members must be two distinct users.")
        if (self.ended_at is not None) != (
            self.status is RelationshipStatus.PENDING_DELETION
        ):
            raise ValueError(
                "Relationship ended_at must be set exactly when pending deletion."
            )
        if self.resume_requested_by is not None and not self.has_member(
            self.resume_requested_by
        ):
            raise ValueError("Resume can only be requested by a member.")

    @property
    def is_active(self) -> bool:
        return self.status is RelationshipStatus.ACTIVE

    @property
    def permanent_deletion_at(self) -> datetime | None:
        """Deadline for resuming; derived from ended_at, never stored."""
        if self.ended_at is None:
            return None
        return self.ended_at + GRACE_PERIOD

    def has_member(self, user_id: int) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def partner_of(self, user_id: int) -> int:
        if user_id == self.user1_id:
            return self.user2_id
        if user_id == self.user2_id:
            return self.user1_id
        raise ValueError(f"User {user_id} is not a member of relationship {self.id}.")

    def grace_period_expired(self, now: datetime) -> bool:
        deadline = self.permanent_deletion_at
        return deadline is not None and now >= deadline

    def ended(self, now: datetime) -> "Relationship":
        return replace(
            self,
            status=RelationshipStatus.PENDING_DELETION,
            ended_at=now,
            updated_at=now,
            resume_requested_by=None,
            resume_requested_at=None,
        )

    def with_resume_request(self, user_id: int, now: datetime) -> "Relationship":
        return replace(
            self,
            resume_requested_by=user_id,
            resume_requested_at=now,
            updated_at=now,
        )

    def without_resume_request(self, now: datetime) -> "Relationship":
        return replace(
            self,
            resume_requested_by=None,
            resume_requested_at=None,
            updated_at=now,
        )

    def with_start_date(self, start_date: date, now: datetime) -> "Relationship":
        return replace(self, start_date=start_date, updated_at=now)

    def resumed(self, now: datetime) -> "Relationship":
        return replace(
            self,
            status=RelationshipStatus.ACTIVE,
            ended_at=None,
            resume_requested_by=None,
            resume_requested_at=None,
            updated_at=now,
        )


@dataclass(frozen=True)
class Post:
    """
    Journal entry scoped to the relationship its author was in when writing it.
    relationship_id never changes, even after the relationship ends.
    """

    id: int
    text: str
    created_by: int
    relationship_id: int
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None

    def __post_init__(self):
        text = (self.text or "").strip()
        if not text:
            raise ValueError("Post text must be non-empty.")
        if len(text) > POST_TEXT_MAX_LENGTH:
            raise ValueError(
                f"Post text must be at most {POST_TEXT_MAX_LENGTH} chars."
            )
        object.__setattr__(self, "text", text)
