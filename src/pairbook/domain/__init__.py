"""Domain layer: entities and value objects. No dependencies on outer layers."""

from pairbook.domain.entities import (
    GRACE_PERIOD,
    Invitation,
    Post,
    Relationship,
    RelationshipStatus,
)
from pairbook.domain.invite_code import (
    INVITE_CODE_LENGTH,
    INVITE_CODE_MAX_ATTEMPTS,
    generate_invite_code,
    normalize_invite_code,
)

__all__ = [
    "GRACE_PERIOD",
    "INVITE_CODE_LENGTH",
    "INVITE_CODE_MAX_ATTEMPTS",
    "Invitation",
    "Post",
    "Relationship",
    "RelationshipStatus",
    "generate_invite_code",
    "normalize_invite_code",
]
