"""Infrastructure layer: concrete implementations of application ports."""

from pairbook.infrastructure.memory_repository import (
    InMemoryPairingStore,
    InMemoryPostRepository,
)
from pairbook.infrastructure.persistence.neo4j_repository import (
    Neo4jPairingStore,
    Neo4jPostRepository,
    ensure_constraints,
)

__all__ = [
    "InMemoryPairingStore",
    "InMemoryPostRepository",
    "Neo4jPairingStore",
    "Neo4jPostRepository",
    "ensure_constraints",
]
