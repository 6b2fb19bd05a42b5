"""Relationship lifecycle: end, grace period, two-party resume handshake."""

import logging
from datetime import date, datetime

from pairbook.application.dto import (
    AlreadyPaired,
    Ended,
    Forbidden,
    GracePeriodExpired,
    InvalidStartDate,
    NoActiveRelationship,
    NoEndedRelationship,
    NoPendingResume,
    PendingPartnerApproval,
    RelationshipView,
    ResumeCancelled,
    ResumeRequest,
    Resumed,
    StartDateUpdated,
)
from pairbook.application.ports import Clock, PairingStore, PairingUnit
from pairbook.domain import Relationship, RelationshipStatus
from pairbook.domain.entities import utcnow

logger = logging.getLogger(__name__)

ResumeOutcome = (
    PendingPartnerApproval
    | Resumed
    | NoEndedRelationship
    | GracePeriodExpired
    | AlreadyPaired
)


def _parse_start_date(value: date | str) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def _lock(
    unit: PairingUnit, relationship: Relationship | None, status: RelationshipStatus
) -> Relationship | None:
    """Take the row lock and re-read; None if the row moved out of the expected status."""
    if relationship is None:
        return None
    fresh = unit.lock_relationship(relationship.id)
    if fresh is None or fresh.status is not status:
        return None
    return fresh


class RelationshipService:
    """State machine: active -> pending_deletion -> active (resumed) or swept.

    Resume is a single verb with three branches keyed on who asked first:
    no request yet creates one, the same requester restates it, and the other
    member completes it.
    """

    def __init__(self, store: PairingStore, *, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    # --- Queries used by the content boundary ---

    def get_active_relationship(self, user_id: int) -> Relationship | None:
        return self._store.run_read(
            lambda unit: unit.find_active_relationship(user_id)
        )

    @staticmethod
    def get_partner_id(relationship: Relationship, user_id: int) -> int:
        return relationship.partner_of(user_id)

    def get_relationship(self, user_id: int) -> RelationshipView | None:
        """Return the caller's relationship from their side, or None.

        Falls back to an ended relationship still in its grace period so the
        deletion deadline and any resume request can be shown.
        """
        relationship = self._store.run_read(
            lambda unit: unit.find_active_relationship(user_id)
            or unit.find_ended_relationship(user_id)
        )
        if relationship is None:
            return None
        resume_request = None
        if relationship.resume_requested_by is not None:
            resume_request = ResumeRequest(
                requested_by=relationship.resume_requested_by,
                requested_at=relationship.resume_requested_at,
            )
        return RelationshipView(
            id=relationship.id,
            partner_id=relationship.partner_of(user_id),
            status=relationship.status.value,
            start_date=relationship.start_date,
            created_at=relationship.created_at,
            permanent_deletion_at=relationship.permanent_deletion_at,
            resume_request=resume_request,
        )

    # --- Transitions ---

    def _end(self, unit: PairingUnit, user_id: int) -> Ended | NoActiveRelationship:
        unit.lock_users(user_id)
        relationship = _lock(
            unit, unit.find_active_relationship(user_id), RelationshipStatus.ACTIVE
        )
        if relationship is None:
            return NoActiveRelationship(user_id=user_id)
        ended = relationship.ended(self._clock())
        unit.save_relationship(ended)
        return Ended(
            relationship_id=ended.id,
            ended_at=ended.ended_at,
            permanent_deletion_at=ended.permanent_deletion_at,
        )

    def end(self, user_id: int) -> Ended | NoActiveRelationship:
        """End the caller's active relationship. Either member may do this alone."""
        result = self._store.run_atomic(lambda unit: self._end(unit, user_id))
        if isinstance(result, Ended):
            logger.info(
                "Relationship %s ended by user %s; permanent deletion at %s",
                result.relationship_id,
                user_id,
                result.permanent_deletion_at.isoformat(),
            )
        return result

    def _resume(self, unit: PairingUnit, user_id: int) -> ResumeOutcome:
        unit.lock_users(user_id)
        relationship = _lock(
            unit,
            unit.find_ended_relationship(user_id),
            RelationshipStatus.PENDING_DELETION,
        )
        if relationship is None:
            return NoEndedRelationship(user_id=user_id)
        now = self._clock()
        if relationship.grace_period_expired(now):
            return GracePeriodExpired(
                relationship_id=relationship.id,
                permanent_deletion_at=relationship.permanent_deletion_at,
            )

        requested_by = relationship.resume_requested_by
        if requested_by is None:
            unit.save_relationship(relationship.with_resume_request(user_id, now))
            return PendingPartnerApproval(
                relationship_id=relationship.id, requested_by=user_id
            )
        if requested_by == user_id:
            return PendingPartnerApproval(
                relationship_id=relationship.id,
                requested_by=user_id,
                already_requested=True,
            )

        # Partner's call approves and completes. Neither member may have paired elsewhere.
        partner_id = relationship.partner_of(user_id)
        unit.lock_users(partner_id)
        for member_id in (user_id, partner_id):
            if unit.find_active_relationship(member_id) is not None:
                return AlreadyPaired(user_id=member_id)
        unit.save_relationship(relationship.resumed(now))
        return Resumed(relationship_id=relationship.id)

    def resume(self, user_id: int) -> ResumeOutcome:
        """Request, restate, or complete the resume of the caller's ended relationship."""
        result = self._store.run_atomic(lambda unit: self._resume(unit, user_id))
        if isinstance(result, Resumed):
            logger.info(
                "Relationship %s resumed; approved by user %s",
                result.relationship_id,
                user_id,
            )
        elif isinstance(result, PendingPartnerApproval) and not result.already_requested:
            logger.info(
                "Resume of relationship %s requested by user %s",
                result.relationship_id,
                user_id,
            )
        return result

    def _cancel_resume(
        self, unit: PairingUnit, user_id: int
    ) -> ResumeCancelled | NoPendingResume | Forbidden:
        unit.lock_users(user_id)
        relationship = _lock(
            unit,
            unit.find_ended_relationship(user_id),
            RelationshipStatus.PENDING_DELETION,
        )
        if relationship is None or relationship.resume_requested_by is None:
            return NoPendingResume(user_id=user_id)
        if relationship.resume_requested_by != user_id:
            return Forbidden(reason="Only the requester can cancel the resume request.")
        unit.save_relationship(relationship.without_resume_request(self._clock()))
        return ResumeCancelled(relationship_id=relationship.id)

    def cancel_resume(
        self, user_id: int
    ) -> ResumeCancelled | NoPendingResume | Forbidden:
        """Withdraw the caller's own pending resume request."""
        result = self._store.run_atomic(lambda unit: self._cancel_resume(unit, user_id))
        if isinstance(result, ResumeCancelled):
            logger.info(
                "Resume request on relationship %s cancelled by user %s",
                result.relationship_id,
                user_id,
            )
        return result

    def update_start_date(
        self, user_id: int, start_date: date | str
    ) -> StartDateUpdated | NoActiveRelationship | InvalidStartDate:
        """Set the date the couple considers their relationship started."""
        parsed = _parse_start_date(start_date)
        if parsed is None:
            return InvalidStartDate(
                reason="Invalid date format. Expected ISO format (YYYY-MM-DD)."
            )

        def work(unit: PairingUnit) -> StartDateUpdated | NoActiveRelationship:
            unit.lock_users(user_id)
            relationship = _lock(
                unit, unit.find_active_relationship(user_id), RelationshipStatus.ACTIVE
            )
            if relationship is None:
                return NoActiveRelationship(user_id=user_id)
            unit.save_relationship(relationship.with_start_date(parsed, self._clock()))
            return StartDateUpdated(relationship_id=relationship.id, start_date=parsed)

        return self._store.run_atomic(work)
