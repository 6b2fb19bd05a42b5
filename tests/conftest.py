"""Shared fixtures: a controllable clock and services over in-memory stores."""

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from pairbook.application import (
    InvitationService,
    PairingService,
    PostService,
    RelationshipService,
)
from pairbook.infrastructure import InMemoryPairingStore, InMemoryPostRepository


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryPairingStore:
    return InMemoryPairingStore()


@pytest.fixture
def invitations(store, clock) -> InvitationService:
    return InvitationService(store, clock=clock)


@pytest.fixture
def pairing(store, clock) -> PairingService:
    return PairingService(store, clock=clock)


@pytest.fixture
def relationships(store, clock) -> RelationshipService:
    return RelationshipService(store, clock=clock)


@pytest.fixture
def posts(relationships, clock) -> PostService:
    return PostService(InMemoryPostRepository(), relationships, clock=clock)


@pytest.fixture
def pair(invitations, pairing):
    """Pair two users through an invitation; returns the Paired result."""

    def _pair(creator_id: int, acceptor_id: int):
        issued = invitations.create_invitation(creator_id)
        return pairing.accept_invitation(issued.code, acceptor_id)

    return _pair


@pytest.fixture
def active_counts():
    """Count active relationships per user in an in-memory store."""

    def _count(store: InMemoryPairingStore) -> Counter:
        counts: Counter = Counter()
        for relationship in store.all_relationships():
            if relationship.is_active:
                counts[relationship.user1_id] += 1
                counts[relationship.user2_id] += 1
        return counts

    return _count
