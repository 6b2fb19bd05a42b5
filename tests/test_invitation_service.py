"""Unit tests for InvitationService. In-memory store and a fake clock."""

import threading

from pairbook.application import (
    AlreadyPaired,
    CreatorAlreadyPaired,
    GenerationExhausted,
    InvitationIssued,
    InvitationNotFound,
    InvitationService,
    Paired,
    SelfAccept,
    Valid,
)
from pairbook.domain import INVITE_CODE_LENGTH, INVITE_CODE_MAX_ATTEMPTS
from pairbook.domain.invite_code import INVITE_CODE_ALPHABET

ALICE, BOB, CAROL = 1, 2, 3


def test_create_then_validate_is_valid(invitations) -> None:
    issued = invitations.create_invitation(ALICE)
    assert isinstance(issued, InvitationIssued)
    assert len(issued.code) == INVITE_CODE_LENGTH
    assert all(ch in INVITE_CODE_ALPHABET for ch in issued.code)

    result = invitations.validate(issued.code)
    assert isinstance(result, Valid)
    assert result.invitation.created_by == ALICE
    assert result.invitation.code == issued.code


def test_validate_is_case_insensitive(invitations) -> None:
    issued = invitations.create_invitation(ALICE)
    result = invitations.validate(f"  {issued.code.lower()} ")
    assert isinstance(result, Valid)


def test_second_invitation_replaces_first(invitations) -> None:
    first = invitations.create_invitation(ALICE)
    second = invitations.create_invitation(ALICE)
    assert first.code != second.code

    assert isinstance(invitations.validate(first.code), InvitationNotFound)
    assert isinstance(invitations.validate(second.code), Valid)


def test_invitations_never_expire(invitations, clock) -> None:
    issued = invitations.create_invitation(ALICE)
    clock.advance(days=365)
    assert isinstance(invitations.validate(issued.code, BOB), Valid)


def test_validate_unknown_or_empty_code(invitations) -> None:
    assert isinstance(invitations.validate("ZZZZZZZZ"), InvitationNotFound)
    assert isinstance(invitations.validate(""), InvitationNotFound)
    assert isinstance(invitations.validate(None), InvitationNotFound)


def test_validate_self_accept(invitations) -> None:
    issued = invitations.create_invitation(ALICE)
    result = invitations.validate(issued.code, ALICE)
    assert isinstance(result, SelfAccept)
    # Without an accepting user the self check is skipped.
    assert isinstance(invitations.validate(issued.code), Valid)


def test_stale_invitation_reports_creator_already_paired(
    store, invitations, pairing
) -> None:
    stale = invitations.create_invitation(ALICE)
    bob_code = invitations.create_invitation(BOB)
    assert isinstance(pairing.accept_invitation(bob_code.code, ALICE), Paired)

    result = invitations.validate(stale.code, CAROL)
    assert isinstance(result, CreatorAlreadyPaired)
    assert result.creator_id == ALICE
    # Not cleaned up eagerly: the row is still stored.
    assert store.run_read(lambda unit: unit.find_invitation_by_code(stale.code)) is not None


def test_create_fails_when_already_paired(invitations, pair) -> None:
    pair(ALICE, BOB)
    assert isinstance(invitations.create_invitation(ALICE), AlreadyPaired)
    assert isinstance(invitations.create_invitation(BOB), AlreadyPaired)


def test_get_or_create_returns_existing_code(invitations) -> None:
    issued = invitations.create_invitation(ALICE)
    again = invitations.get_or_create(ALICE)
    assert again.code == issued.code
    assert again.created_at == issued.created_at


def test_get_or_create_creates_when_missing(invitations) -> None:
    created = invitations.get_or_create(BOB)
    assert isinstance(created, InvitationIssued)
    assert isinstance(invitations.validate(created.code), Valid)


def test_concurrent_get_or_create_agrees_on_one_live_code(store, invitations) -> None:
    barrier = threading.Barrier(2)
    entered = threading.local()
    entered.done = True  # only worker threads wait

    def synchronized(run):
        def wrapper(work):
            if not getattr(entered, "done", False):
                entered.done = True
                barrier.wait()
            return run(work)

        return wrapper

    store.run_read = synchronized(store.run_read)
    store.run_atomic = synchronized(store.run_atomic)
    results = []

    def fetch() -> None:
        results.append(invitations.get_or_create(ALICE))

    threads = [threading.Thread(target=fetch) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len({r.code for r in results}) == 1
    assert isinstance(invitations.validate(results[0].code), Valid)


def test_generation_gives_up_after_max_attempts(store, clock) -> None:
    calls = []

    def fixed_code() -> str:
        calls.append(1)
        return "ABCDEFGH"

    InvitationService(store, clock=clock, code_generator=fixed_code).create_invitation(ALICE)
    calls.clear()

    bob_service = InvitationService(store, clock=clock)
    bob_original = bob_service.create_invitation(BOB)

    colliding = InvitationService(store, clock=clock, code_generator=fixed_code)
    result = colliding.create_invitation(BOB)
    assert isinstance(result, GenerationExhausted)
    assert result.attempts == INVITE_CODE_MAX_ATTEMPTS
    assert len(calls) == INVITE_CODE_MAX_ATTEMPTS
    # The failed attempt rolled back: Bob's previous code is still live.
    assert isinstance(bob_service.validate(bob_original.code), Valid)


def test_creator_can_reissue_same_code_after_deleting_own(store, clock) -> None:
    service = InvitationService(store, clock=clock, code_generator=lambda: "ABCDEFGH")
    assert service.create_invitation(ALICE).code == "ABCDEFGH"
    assert service.create_invitation(ALICE).code == "ABCDEFGH"


def test_retry_finds_free_code_within_cap(store, clock) -> None:
    InvitationService(store, clock=clock, code_generator=lambda: "TAKENXYZ").create_invitation(ALICE)
    codes = iter(["TAKENXYZ"] * (INVITE_CODE_MAX_ATTEMPTS - 1) + ["FREECODE"])
    service = InvitationService(store, clock=clock, code_generator=lambda: next(codes))
    result = service.create_invitation(BOB)
    assert isinstance(result, InvitationIssued)
    assert result.code == "FREECODE"


def test_consume_deletes_and_is_idempotent(invitations) -> None:
    issued = invitations.create_invitation(ALICE)
    invitation = invitations.validate(issued.code).invitation
    invitations.consume(invitation.id)
    assert isinstance(invitations.validate(issued.code), InvitationNotFound)
    invitations.consume(invitation.id)
    invitations.consume(9999)


def test_revoke_removes_creator_invitations(invitations) -> None:
    issued = invitations.create_invitation(ALICE)
    assert invitations.revoke(ALICE) == 1
    assert invitations.revoke(ALICE) == 0
    assert isinstance(invitations.validate(issued.code), InvitationNotFound)
