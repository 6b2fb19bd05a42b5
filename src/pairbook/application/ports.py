"""Application ports (interfaces). Implemented by infrastructure adapters."""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol, TypeVar

from pairbook.domain import Invitation, Post, Relationship

T = TypeVar("T")

# Injectable source of the current time (timezone-aware UTC).
Clock = Callable[[], datetime]


class StoreError(RuntimeError):
    """Storage or transport fault. Carries no driver detail in its message."""


class PairingUnit(Protocol):
    """Reads and writes available inside one atomic unit of a PairingStore."""

    def lock_users(self, *user_ids: int) -> None:
        """Serialize concurrent units touching the same users until this unit ends."""
        ...

    def lock_relationship(self, relationship_id: int) -> Relationship | None:
        """Take the row lock and return the row's latest committed state, or None."""
        ...

    def find_active_relationship(self, user_id: int) -> Relationship | None:
        """Return the user's relationship with status active, or None."""
        ...

    def find_ended_relationship(self, user_id: int) -> Relationship | None:
        """Return the user's most recently ended (pending deletion) relationship, or None."""
        ...

    def insert_relationship(
        self, user1_id: int, user2_id: int, now: datetime
    ) -> Relationship:
        """Create an active relationship with no start date and no resume request."""
        ...

    def save_relationship(self, relationship: Relationship) -> None:
        """Overwrite the stored row with the given state (matched by id)."""
        ...

    def find_invitation_by_code(self, code: str) -> Invitation | None:
        ...

    def find_latest_invitation(self, creator_id: int) -> Invitation | None:
        """Return the creator's most recent invitation, or None."""
        ...

    def insert_invitation(self, code: str, creator_id: int, now: datetime) -> Invitation:
        ...

    def delete_invitation(self, invitation_id: int) -> bool:
        """Hard delete by id. Returns False if it did not exist."""
        ...

    def delete_invitations_by_creator(self, creator_id: int) -> int:
        """Hard delete every invitation by the creator. Returns how many were removed."""
        ...


class PairingStore(Protocol):
    """Relationship and invitation storage. All access goes through atomic units.

    Work functions may be retried on transient conflicts, so they must not have
    side effects outside the unit. An exception raised by the work function
    rolls the unit back and propagates.
    """

    def run_atomic(self, work: Callable[[PairingUnit], T]) -> T:
        ...

    def run_read(self, work: Callable[[PairingUnit], T]) -> T:
        ...


class PostRepository(Protocol):
    """Persists and queries posts."""

    def add(
        self, text: str, created_by: int, relationship_id: int, now: datetime
    ) -> Post:
        ...

    def get_by_id(self, post_id: int) -> Post | None:
        ...

    def list_by_relationship(self, relationship_id: int) -> list[Post]:
        """Return posts of the relationship, newest first."""
        ...

    def delete(self, post_id: int) -> bool:
        """Hard delete. Returns False if it did not exist."""
        ...
