"""Application layer: use cases, ports, and DTOs. Depends only on domain."""

from pairbook.application.dto import (
    AlreadyPaired,
    CreatorAlreadyPaired,
    Ended,
    Forbidden,
    GenerationExhausted,
    GracePeriodExpired,
    InvalidPost,
    InvalidStartDate,
    InvitationIssued,
    InvitationNotFound,
    NoActiveRelationship,
    NoEndedRelationship,
    NoPendingResume,
    Paired,
    PendingPartnerApproval,
    PostCreated,
    PostDeleted,
    PostNotFound,
    RelationshipView,
    ResumeCancelled,
    ResumeRequest,
    Resumed,
    SelfAccept,
    StartDateUpdated,
    Valid,
    WrongRelationship,
)
from pairbook.application.invitation_service import InvitationService
from pairbook.application.pairing_service import PairingService
from pairbook.application.ports import (
    Clock,
    PairingStore,
    PairingUnit,
    PostRepository,
    StoreError,
)
from pairbook.application.post_service import PostService
from pairbook.application.relationship_service import RelationshipService

__all__ = [
    "AlreadyPaired",
    "Clock",
    "CreatorAlreadyPaired",
    "Ended",
    "Forbidden",
    "GenerationExhausted",
    "GracePeriodExpired",
    "InvalidPost",
    "InvalidStartDate",
    "InvitationIssued",
    "InvitationNotFound",
    "InvitationService",
    "NoActiveRelationship",
    "NoEndedRelationship",
    "NoPendingResume",
    "PairingService",
    "PairingStore",
    "PairingUnit",
    "Paired",
    "PendingPartnerApproval",
    "PostCreated",
    "PostDeleted",
    "PostNotFound",
    "PostRepository",
    "PostService",
    "RelationshipService",
    "RelationshipView",
    "ResumeCancelled",
    "ResumeRequest",
    "Resumed",
    "SelfAccept",
    "StartDateUpdated",
    "StoreError",
    "Valid",
    "WrongRelationship",
]
