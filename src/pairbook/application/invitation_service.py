"""Invitation registry: issue, look up, validate and consume invite codes."""

import logging
from collections.abc import Callable

from pairbook.application.dto import (
    AlreadyPaired,
    CreatorAlreadyPaired,
    GenerationExhausted,
    InvitationIssued,
    InvitationNotFound,
    SelfAccept,
    Valid,
)
from pairbook.application.ports import Clock, PairingStore, PairingUnit
from pairbook.domain import (
    INVITE_CODE_MAX_ATTEMPTS,
    Invitation,
    generate_invite_code,
    normalize_invite_code,
)
from pairbook.domain.entities import utcnow

logger = logging.getLogger(__name__)


class _CodeSpaceExhausted(Exception):
    """Raised inside a unit to roll back the deletions it already made."""


def check_invitation(
    unit: PairingUnit, code: str | None, accepting_user_id: int | None = None
) -> Valid | InvitationNotFound | SelfAccept | CreatorAlreadyPaired:
    """Validation shared by validate() and invitation acceptance. Reads only."""
    normalized = normalize_invite_code(code)
    if normalized is None:
        return InvitationNotFound(code=code)
    invitation = unit.find_invitation_by_code(normalized)
    if invitation is None:
        return InvitationNotFound(code=normalized)
    if accepting_user_id is not None and invitation.created_by == accepting_user_id:
        return SelfAccept(code=normalized)
    # Lazy invalidation: the creator may have paired through another code.
    if unit.find_active_relationship(invitation.created_by) is not None:
        return CreatorAlreadyPaired(code=normalized, creator_id=invitation.created_by)
    return Valid(invitation=invitation)


class InvitationService:
    """One live invitation per creator; codes never expire, only get replaced."""

    def __init__(
        self,
        store: PairingStore,
        *,
        clock: Clock = utcnow,
        code_generator: Callable[[], str] = generate_invite_code,
        max_attempts: int = INVITE_CODE_MAX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._generate = code_generator
        self._max_attempts = max_attempts

    def _generate_unique_code(self, unit: PairingUnit) -> str:
        for _ in range(self._max_attempts):
            code = normalize_invite_code(self._generate())
            if code and unit.find_invitation_by_code(code) is None:
                return code
        raise _CodeSpaceExhausted()

    def _issue(self, unit: PairingUnit, creator_id: int) -> Invitation | AlreadyPaired:
        unit.lock_users(creator_id)
        if unit.find_active_relationship(creator_id) is not None:
            return AlreadyPaired(user_id=creator_id)
        unit.delete_invitations_by_creator(creator_id)
        code = self._generate_unique_code(unit)
        return unit.insert_invitation(code, creator_id, self._clock())

    def _get_or_issue(
        self, unit: PairingUnit, creator_id: int
    ) -> Invitation | AlreadyPaired:
        unit.lock_users(creator_id)
        existing = unit.find_latest_invitation(creator_id)
        if existing is not None:
            return existing
        return self._issue(unit, creator_id)

    def _run_issue(
        self, creator_id: int, work: Callable[[PairingUnit], Invitation | AlreadyPaired]
    ) -> Invitation | AlreadyPaired | GenerationExhausted:
        try:
            return self._store.run_atomic(work)
        except _CodeSpaceExhausted:
            logger.warning(
                "Could not generate a unique invite code for user %s after %d attempts",
                creator_id,
                self._max_attempts,
            )
            return GenerationExhausted(attempts=self._max_attempts)

    def create_invitation(
        self, creator_id: int
    ) -> InvitationIssued | AlreadyPaired | GenerationExhausted:
        """Replace the creator's invitation with a fresh code."""
        result = self._run_issue(creator_id, lambda unit: self._issue(unit, creator_id))
        if isinstance(result, AlreadyPaired | GenerationExhausted):
            return result
        logger.info("Invitation %s issued for user %s", result.id, creator_id)
        return InvitationIssued(code=result.code, created_at=result.created_at)

    def get_or_create(
        self, creator_id: int
    ) -> InvitationIssued | AlreadyPaired | GenerationExhausted:
        """Return the creator's most recent live invitation, creating one if none exists.

        Lookup and issue share one unit, so concurrent callers agree on the code.
        """
        result = self._run_issue(
            creator_id, lambda unit: self._get_or_issue(unit, creator_id)
        )
        if isinstance(result, AlreadyPaired | GenerationExhausted):
            return result
        return InvitationIssued(code=result.code, created_at=result.created_at)

    def validate(
        self, code: str | None, accepting_user_id: int | None = None
    ) -> Valid | InvitationNotFound | SelfAccept | CreatorAlreadyPaired:
        """Check whether a code can be accepted. No side effects."""
        return self._store.run_read(
            lambda unit: check_invitation(unit, code, accepting_user_id)
        )

    def consume(self, invitation_id: int) -> None:
        """Hard delete an invitation. Missing ids are ignored."""
        self._store.run_atomic(lambda unit: unit.delete_invitation(invitation_id))

    def revoke(self, creator_id: int) -> int:
        """Delete every invitation by the creator. Returns how many were removed."""
        removed = self._store.run_atomic(
            lambda unit: unit.delete_invitations_by_creator(creator_id)
        )
        if removed:
            logger.info("Revoked %d invitation(s) of user %s", removed, creator_id)
        return removed
