"""
Pairbook core: clean-architecture layout.

- domain: entities (Invitation, Relationship, Post) and invite codes. No outer dependencies.
- application: use cases (InvitationService, PairingService, RelationshipService,
  PostService), ports (PairingStore, PostRepository), result DTOs.
- infrastructure: adapters (in-memory and Neo4j stores).
"""

from pairbook.application import (
    InvitationService,
    PairingService,
    PairingStore,
    PostRepository,
    PostService,
    RelationshipService,
    StoreError,
)
from pairbook.domain import (
    GRACE_PERIOD,
    Invitation,
    Post,
    Relationship,
    RelationshipStatus,
)
from pairbook.infrastructure import (
    InMemoryPairingStore,
    InMemoryPostRepository,
    Neo4jPairingStore,
    Neo4jPostRepository,
)

__all__ = [
    "GRACE_PERIOD",
    "InMemoryPairingStore",
    "InMemoryPostRepository",
    "Invitation",
    "InvitationService",
    "Neo4jPairingStore",
    "Neo4jPostRepository",
    "PairingService",
    "PairingStore",
    "Post",
    "PostRepository",
    "PostService",
    "Relationship",
    "RelationshipService",
    "RelationshipStatus",
    "StoreError",
]
