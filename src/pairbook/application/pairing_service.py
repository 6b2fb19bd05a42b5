"""Pairing: turn an accepted invitation into an active relationship."""

import logging

from pairbook.application.dto import (
    AlreadyPaired,
    CreatorAlreadyPaired,
    InvitationNotFound,
    Paired,
    SelfAccept,
    Valid,
)
from pairbook.application.invitation_service import check_invitation
from pairbook.application.ports import Clock, PairingStore, PairingUnit
from pairbook.domain import normalize_invite_code
from pairbook.domain.entities import utcnow

logger = logging.getLogger(__name__)


class PairingService:
    """Accepts invitations. Checks and writes happen in one atomic unit."""

    def __init__(self, store: PairingStore, *, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    def _accept(
        self, unit: PairingUnit, code: str | None, accepting_user_id: int
    ) -> Paired | AlreadyPaired | InvitationNotFound | SelfAccept | CreatorAlreadyPaired:
        unit.lock_users(accepting_user_id)
        if unit.find_active_relationship(accepting_user_id) is not None:
            return AlreadyPaired(user_id=accepting_user_id)

        normalized = normalize_invite_code(code)
        invitation = unit.find_invitation_by_code(normalized) if normalized else None
        if invitation is None:
            return InvitationNotFound(code=normalized or code)
        # Lock the creator too, then re-run every check under both locks.
        unit.lock_users(invitation.created_by)
        if unit.find_active_relationship(accepting_user_id) is not None:
            return AlreadyPaired(user_id=accepting_user_id)
        outcome = check_invitation(unit, normalized, accepting_user_id)
        if not isinstance(outcome, Valid):
            return outcome

        relationship = unit.insert_relationship(
            invitation.created_by, accepting_user_id, self._clock()
        )
        unit.delete_invitation(invitation.id)
        return Paired(
            relationship_id=relationship.id,
            user1_id=relationship.user1_id,
            user2_id=relationship.user2_id,
        )

    def accept_invitation(
        self, code: str | None, accepting_user_id: int
    ) -> Paired | AlreadyPaired | InvitationNotFound | SelfAccept | CreatorAlreadyPaired:
        """Pair the accepting user with the invitation's creator and consume the code.

        Preconditions, first failure wins: acceptor unpaired, code exists,
        not the acceptor's own code, creator unpaired.
        """
        result = self._store.run_atomic(
            lambda unit: self._accept(unit, code, accepting_user_id)
        )
        if isinstance(result, Paired):
            logger.info(
                "Relationship %s created: users %s and %s",
                result.relationship_id,
                result.user1_id,
                result.user2_id,
            )
        return result
