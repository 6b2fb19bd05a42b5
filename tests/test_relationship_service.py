"""Unit tests for the relationship lifecycle: end, resume handshake, cancel, grace period."""

from datetime import date, timedelta

import threading

import pytest

from pairbook.application import (
    AlreadyPaired,
    Ended,
    Forbidden,
    GracePeriodExpired,
    InvalidStartDate,
    NoActiveRelationship,
    NoEndedRelationship,
    NoPendingResume,
    Paired,
    PendingPartnerApproval,
    ResumeCancelled,
    Resumed,
    StartDateUpdated,
)
from pairbook.domain import GRACE_PERIOD, RelationshipStatus

ALICE, BOB, CAROL = 1, 2, 3


def _stored(store, relationship_id: int):
    return next(r for r in store.all_relationships() if r.id == relationship_id)


def test_end_moves_to_pending_deletion(pair, relationships, store, clock) -> None:
    paired = pair(ALICE, BOB)
    result = relationships.end(ALICE)
    assert isinstance(result, Ended)
    assert result.relationship_id == paired.relationship_id
    assert result.ended_at == clock.now
    assert result.permanent_deletion_at == clock.now + timedelta(days=7)

    stored = _stored(store, paired.relationship_id)
    assert stored.status is RelationshipStatus.PENDING_DELETION
    assert stored.ended_at == clock.now
    assert relationships.get_active_relationship(ALICE) is None
    assert relationships.get_active_relationship(BOB) is None


def test_end_without_active_relationship(pair, relationships) -> None:
    assert isinstance(relationships.end(ALICE), NoActiveRelationship)
    pair(ALICE, BOB)
    relationships.end(BOB)
    assert isinstance(relationships.end(ALICE), NoActiveRelationship)


def test_resume_handshake_request_restate_complete(pair, relationships, store) -> None:
    paired = pair(ALICE, BOB)
    relationships.end(ALICE)

    first = relationships.resume(ALICE)
    again = relationships.resume(ALICE)
    assert isinstance(first, PendingPartnerApproval)
    assert isinstance(again, PendingPartnerApproval)
    assert first.requested_by == again.requested_by == ALICE
    assert first.already_requested is False
    assert again.already_requested is True

    done = relationships.resume(BOB)
    assert isinstance(done, Resumed)
    assert done.relationship_id == paired.relationship_id

    stored = _stored(store, paired.relationship_id)
    assert stored.status is RelationshipStatus.ACTIVE
    assert stored.ended_at is None
    assert stored.resume_requested_by is None
    assert stored.resume_requested_at is None
    assert relationships.get_active_relationship(ALICE).id == paired.relationship_id


def test_restating_request_does_not_move_requested_at(
    pair, relationships, store, clock
) -> None:
    paired = pair(ALICE, BOB)
    relationships.end(ALICE)
    relationships.resume(BOB)
    requested_at = _stored(store, paired.relationship_id).resume_requested_at
    clock.advance(hours=5)
    relationships.resume(BOB)
    assert _stored(store, paired.relationship_id).resume_requested_at == requested_at


def test_resume_without_ended_relationship(pair, relationships) -> None:
    assert isinstance(relationships.resume(ALICE), NoEndedRelationship)
    pair(ALICE, BOB)
    assert isinstance(relationships.resume(ALICE), NoEndedRelationship)


@pytest.mark.parametrize("caller", [ALICE, BOB])
def test_resume_at_deadline_fails_for_anyone(
    pair, relationships, clock, caller
) -> None:
    pair(ALICE, BOB)
    ended = relationships.end(ALICE)
    clock.advance(seconds=GRACE_PERIOD.total_seconds())
    result = relationships.resume(caller)
    assert isinstance(result, GracePeriodExpired)
    assert result.permanent_deletion_at == ended.permanent_deletion_at


def test_resume_just_before_deadline_succeeds(pair, relationships, clock) -> None:
    pair(ALICE, BOB)
    relationships.end(ALICE)
    clock.advance(days=7, seconds=-1)
    assert isinstance(relationships.resume(BOB), PendingPartnerApproval)


def test_deadline_rechecked_on_completing_call(pair, relationships, clock) -> None:
    pair(ALICE, BOB)
    relationships.end(ALICE)
    clock.advance(days=6)
    assert isinstance(relationships.resume(ALICE), PendingPartnerApproval)
    clock.advance(days=1)
    assert isinstance(relationships.resume(BOB), GracePeriodExpired)
    assert isinstance(relationships.resume(ALICE), GracePeriodExpired)


def test_cancel_by_partner_is_forbidden(pair, relationships) -> None:
    pair(ALICE, BOB)
    relationships.end(BOB)
    relationships.resume(ALICE)
    assert isinstance(relationships.cancel_resume(BOB), Forbidden)


def test_cancel_by_requester_then_fresh_request(pair, relationships, store) -> None:
    paired = pair(ALICE, BOB)
    relationships.end(BOB)
    relationships.resume(ALICE)

    cancelled = relationships.cancel_resume(ALICE)
    assert isinstance(cancelled, ResumeCancelled)
    stored = _stored(store, paired.relationship_id)
    assert stored.resume_requested_by is None
    assert stored.status is RelationshipStatus.PENDING_DELETION

    # The partner's call is now a new request, not a completion.
    fresh = relationships.resume(BOB)
    assert isinstance(fresh, PendingPartnerApproval)
    assert fresh.requested_by == BOB
    assert fresh.already_requested is False


def test_cancel_without_request(pair, relationships) -> None:
    assert isinstance(relationships.cancel_resume(ALICE), NoPendingResume)
    pair(ALICE, BOB)
    assert isinstance(relationships.cancel_resume(ALICE), NoPendingResume)
    relationships.end(ALICE)
    assert isinstance(relationships.cancel_resume(ALICE), NoPendingResume)


def test_completion_refused_when_partner_paired_elsewhere(
    pair, invitations, pairing, relationships, active_counts, store
) -> None:
    pair(ALICE, BOB)
    relationships.end(ALICE)
    carol_code = invitations.create_invitation(CAROL)
    assert isinstance(pairing.accept_invitation(carol_code.code, BOB), Paired)

    assert isinstance(relationships.resume(ALICE), PendingPartnerApproval)
    result = relationships.resume(BOB)
    assert isinstance(result, AlreadyPaired)
    assert result.user_id == BOB
    assert active_counts(store)[BOB] == 1


def test_resume_picks_most_recently_ended(pair, relationships, clock) -> None:
    first = pair(ALICE, BOB)
    relationships.end(ALICE)
    clock.advance(days=1)
    second = pair(ALICE, CAROL)
    relationships.end(CAROL)

    result = relationships.resume(ALICE)
    assert isinstance(result, PendingPartnerApproval)
    assert result.relationship_id == second.relationship_id
    assert result.relationship_id != first.relationship_id


def test_get_relationship_view(pair, relationships, clock) -> None:
    assert relationships.get_relationship(ALICE) is None
    paired = pair(ALICE, BOB)

    view = relationships.get_relationship(BOB)
    assert view.id == paired.relationship_id
    assert view.partner_id == ALICE
    assert view.status == "active"
    assert view.permanent_deletion_at is None
    assert view.resume_request is None

    relationships.end(ALICE)
    relationships.resume(BOB)
    view = relationships.get_relationship(ALICE)
    assert view.status == "pending_deletion"
    assert view.permanent_deletion_at == clock.now + GRACE_PERIOD
    assert view.resume_request.requested_by == BOB
    assert view.resume_request.requested_at == clock.now


def test_get_partner_id(pair, relationships) -> None:
    pair(ALICE, BOB)
    relationship = relationships.get_active_relationship(ALICE)
    assert relationships.get_partner_id(relationship, ALICE) == BOB
    assert relationships.get_partner_id(relationship, BOB) == ALICE
    with pytest.raises(ValueError, match="not a member"):
        relationships.get_partner_id(relationship, CAROL)


def test_update_start_date(pair, relationships) -> None:
    pair(ALICE, BOB)
    result = relationships.update_start_date(BOB, "2024-02-14")
    assert isinstance(result, StartDateUpdated)
    assert result.start_date == date(2024, 2, 14)
    assert relationships.get_relationship(ALICE).start_date == date(2024, 2, 14)

    assert isinstance(
        relationships.update_start_date(ALICE, date(2023, 1, 1)), StartDateUpdated
    )


def test_update_start_date_rejects_bad_input(pair, relationships) -> None:
    assert isinstance(
        relationships.update_start_date(ALICE, "2024-01-01"), NoActiveRelationship
    )
    pair(ALICE, BOB)
    assert isinstance(
        relationships.update_start_date(ALICE, "not-a-date"), InvalidStartDate
    )
    assert isinstance(relationships.update_start_date(ALICE, ""), InvalidStartDate)



def test_both_members_resuming_at_once_resume_exactly_once(
    pair, relationships, store, active_counts
) -> None:
    paired = pair(ALICE, BOB)
    relationships.end(ALICE)
    barrier = threading.Barrier(2)
    results = []

    def resume(user_id: int) -> None:
        barrier.wait()
        results.append(relationships.resume(user_id))

    threads = [threading.Thread(target=resume, args=(u,)) for u in (ALICE, BOB)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(isinstance(r, Resumed) for r in results) == 1
    assert sum(isinstance(r, PendingPartnerApproval) for r in results) == 1
    assert _stored(store, paired.relationship_id).is_active
    assert max(active_counts(store).values()) == 1
