"""In-memory implementations of PairingStore and PostRepository (no DB)."""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeVar

from pairbook.domain import Invitation, Post, Relationship, RelationshipStatus

T = TypeVar("T")


@dataclass
class _Tables:
    invitations: dict[int, Invitation] = field(default_factory=dict)
    relationships: dict[int, Relationship] = field(default_factory=dict)
    next_invitation_id: int = 1
    next_relationship_id: int = 1

    def snapshot(self) -> "_Tables":
        # Entities are frozen, so copying the dicts is enough.
        return _Tables(
            invitations=dict(self.invitations),
            relationships=dict(self.relationships),
            next_invitation_id=self.next_invitation_id,
            next_relationship_id=self.next_relationship_id,
        )


class _InMemoryUnit:
    """Unit of work over the shared tables. The store's lock is held throughout."""

    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    def lock_users(self, *user_ids: int) -> None:
        # Units are already serialized by the store lock.
        return None

    def lock_relationship(self, relationship_id: int) -> Relationship | None:
        return self._t.relationships.get(relationship_id)

    def _find(self, user_id: int, status: RelationshipStatus) -> list[Relationship]:
        return [
            r
            for r in self._t.relationships.values()
            if r.status is status and r.has_member(user_id)
        ]

    def find_active_relationship(self, user_id: int) -> Relationship | None:
        found = self._find(user_id, RelationshipStatus.ACTIVE)
        return found[0] if found else None

    def find_ended_relationship(self, user_id: int) -> Relationship | None:
        found = self._find(user_id, RelationshipStatus.PENDING_DELETION)
        if not found:
            return None
        return max(found, key=lambda r: (r.ended_at, r.id))

    def insert_relationship(
        self, user1_id: int, user2_id: int, now: datetime
    ) -> Relationship:
        relationship = Relationship(
            id=self._t.next_relationship_id,
            user1_id=user1_id,
            user2_id=user2_id,
            created_at=now,
            updated_at=now,
        )
        self._t.relationships[relationship.id] = relationship
        self._t.next_relationship_id += 1
        return relationship

    def save_relationship(self, relationship: Relationship) -> None:
        if relationship.id not in self._t.relationships:
            raise KeyError(f"Relationship {relationship.id} does not exist")
        self._t.relationships[relationship.id] = relationship

    def find_invitation_by_code(self, code: str) -> Invitation | None:
        for invitation in self._t.invitations.values():
            if invitation.code == code:
                return invitation
        return None

    def find_latest_invitation(self, creator_id: int) -> Invitation | None:
        mine = [i for i in self._t.invitations.values() if i.created_by == creator_id]
        if not mine:
            return None
        return max(mine, key=lambda i: (i.created_at, i.id))

    def insert_invitation(self, code: str, creator_id: int, now: datetime) -> Invitation:
        invitation = Invitation(
            id=self._t.next_invitation_id,
            code=code,
            created_by=creator_id,
            created_at=now,
        )
        self._t.invitations[invitation.id] = invitation
        self._t.next_invitation_id += 1
        return invitation

    def delete_invitation(self, invitation_id: int) -> bool:
        return self._t.invitations.pop(invitation_id, None) is not None

    def delete_invitations_by_creator(self, creator_id: int) -> int:
        doomed = [
            i.id for i in self._t.invitations.values() if i.created_by == creator_id
        ]
        for invitation_id in doomed:
            del self._t.invitations[invitation_id]
        return len(doomed)


class InMemoryPairingStore:
    """Stores invitations and relationships in memory.
    Atomic units are serialized by one re-entrant lock and rolled back on exception.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables = _Tables()

    def run_atomic(self, work: Callable[[_InMemoryUnit], T]) -> T:
        with self._lock:
            backup = self._tables.snapshot()
            try:
                return work(_InMemoryUnit(self._tables))
            except BaseException:
                self._tables = backup
                raise

    def run_read(self, work: Callable[[_InMemoryUnit], T]) -> T:
        with self._lock:
            return work(_InMemoryUnit(self._tables.snapshot()))

    def all_relationships(self) -> list[Relationship]:
        """Every stored relationship, by id. For inspection in tests and tooling."""
        with self._lock:
            return [self._tables.relationships[k] for k in sorted(self._tables.relationships)]


class InMemoryPostRepository:
    """Stores posts in memory. Ids are assigned in insertion order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[int, Post] = {}
        self._next_id = 1

    def add(
        self, text: str, created_by: int, relationship_id: int, now: datetime
    ) -> Post:
        with self._lock:
            post = Post(
                id=self._next_id,
                text=text,
                created_by=created_by,
                relationship_id=relationship_id,
                created_at=now,
                updated_at=now,
            )
            self._by_id[post.id] = post
            self._next_id += 1
            return post

    def get_by_id(self, post_id: int) -> Post | None:
        return self._by_id.get(post_id)

    def list_by_relationship(self, relationship_id: int) -> list[Post]:
        with self._lock:
            posts = [p for p in self._by_id.values() if p.relationship_id == relationship_id]
        return sorted(posts, key=lambda p: (p.created_at, p.id), reverse=True)

    def delete(self, post_id: int) -> bool:
        with self._lock:
            return self._by_id.pop(post_id, None) is not None
