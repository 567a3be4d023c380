from datetime import timedelta

import pytest
from ptsa.domain.errors import (
    BadRequestError,
    EventAlreadyStartedError,
    EventFullError,
    EventNotFoundError,
    ForbiddenError,
    GuestsNotAllowedError,
    InvalidInputError,
    NotAMemberError,
    RsvpNotRequiredError,
    UnauthenticatedError,
)
from ptsa.models import EventVisibility, MemberRole, RsvpStatus
from ptsa.usecases import rsvps as uc
from ptsa.utils.time import utc_now_naive


async def _upsert(member_repo, event_repo, rsvp_repo, *, event_id, user_id="parent", **payload):
    return await uc.upsert_rsvp(
        member_repo,
        event_repo,
        rsvp_repo,
        event_id=event_id,
        user_id=user_id,
        payload=payload,
    )


def _fill(store, event, attendees: int) -> None:
    for i in range(attendees):
        store.add_rsvp(event, f"other-{i}")


@pytest.mark.asyncio
async def test_rejects_anonymous_caller(member_repo, event_repo, rsvp_repo, store) -> None:
    event = store.add_event()
    with pytest.raises(UnauthenticatedError) as excinfo:
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, user_id=None, status="attending")
    assert str(excinfo.value) == "You must be logged in to RSVP"


@pytest.mark.asyncio
async def test_rejects_non_member(member_repo, event_repo, rsvp_repo, store) -> None:
    event = store.add_event()
    with pytest.raises(NotAMemberError):
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending")


@pytest.mark.asyncio
async def test_membership_is_checked_before_body(member_repo, event_repo, rsvp_repo, store) -> None:
    event = store.add_event()
    with pytest.raises(NotAMemberError):
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="bogus")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"status": "bogus"},
        {"status": "attending", "guest_count": 11},
        {"status": "attending", "guest_count": -1},
        {"status": "maybe", "notes": "x" * 501},
        {},
    ],
)
async def test_rejects_invalid_body(member_repo, event_repo, rsvp_repo, store, payload) -> None:
    store.add_member("parent")
    event = store.add_event()
    with pytest.raises(InvalidInputError) as excinfo:
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, **payload)
    assert excinfo.value.errors
    assert store.rsvps == []


@pytest.mark.asyncio
async def test_rejects_missing_event(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    with pytest.raises(EventNotFoundError):
        await _upsert(member_repo, event_repo, rsvp_repo, event_id="missing", status="attending")


@pytest.mark.asyncio
async def test_board_event_forbidden_for_member(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent", MemberRole.TEACHER)
    event = store.add_event(visibility=EventVisibility.BOARD)
    with pytest.raises(ForbiddenError):
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending")


@pytest.mark.asyncio
async def test_board_event_allowed_for_board(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent", MemberRole.BOARD)
    event = store.add_event(visibility=EventVisibility.BOARD)
    rsvp, created, _ = await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending")
    assert created is True
    assert rsvp.status == RsvpStatus.ATTENDING


@pytest.mark.asyncio
async def test_rejects_event_without_rsvp(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(requires_rsvp=False)
    with pytest.raises(RsvpNotRequiredError):
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending")


@pytest.mark.asyncio
async def test_rejects_started_event(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    start = utc_now_naive() - timedelta(minutes=5)
    event = store.add_event(start_time=start, end_time=start + timedelta(hours=2))
    with pytest.raises(EventAlreadyStartedError):
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="maybe")


@pytest.mark.asyncio
async def test_rejects_guests_when_not_allowed(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(allow_guests=False)
    with pytest.raises(GuestsNotAllowedError) as excinfo:
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending", guest_count=2)
    assert str(excinfo.value) == "This event does not allow guests"


@pytest.mark.asyncio
async def test_non_attending_rsvp_holds_no_guests(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(allow_guests=False)
    rsvp, _, _ = await _upsert(
        member_repo, event_repo, rsvp_repo, event_id=event.id, status="not_attending", guest_count=3
    )
    assert rsvp.guest_count == 0


@pytest.mark.asyncio
async def test_event_full_with_guests(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(capacity=20)
    _fill(store, event, 15)
    with pytest.raises(EventFullError) as excinfo:
        await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending", guest_count=5)
    assert str(excinfo.value) == "Event is full"
    assert rsvp_repo.created == 0


@pytest.mark.asyncio
async def test_single_attendee_fits(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(capacity=20)
    _fill(store, event, 15)
    rsvp, created, previous = await _upsert(
        member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending", guest_count=0
    )
    assert created is True
    assert previous is None
    assert rsvp.event_id == event.id
    assert rsvp.user_id == "parent"


@pytest.mark.asyncio
async def test_guests_of_others_count_against_capacity(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(capacity=10)
    store.add_rsvp(event, "a", guest_count=4)
    store.add_rsvp(event, "b", guest_count=3)
    store.add_rsvp(event, "c", status=RsvpStatus.MAYBE, guest_count=0)
    # 5 + 4 reserved by others, so one more person fits
    await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending")
    with pytest.raises(EventFullError):
        await _upsert(
            member_repo, event_repo, rsvp_repo, event_id=event.id, user_id="parent", status="attending", guest_count=1
        )


@pytest.mark.asyncio
async def test_update_excludes_own_previous_reservation(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(capacity=20)
    _fill(store, event, 13)
    store.add_rsvp(event, "parent", guest_count=2)
    # others hold 13; the caller's old 3 spots are released before checking the new 7
    rsvp, created, previous = await _upsert(
        member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending", guest_count=6
    )
    assert created is False
    assert previous == RsvpStatus.ATTENDING
    assert rsvp.guest_count == 6
    assert rsvp_repo.updated == 1
    assert len([r for r in store.rsvps if r.user_id == "parent"]) == 1


@pytest.mark.asyncio
async def test_resubmitting_same_rsvp_at_capacity_succeeds(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(capacity=5)
    _fill(store, event, 2)
    store.add_rsvp(event, "parent", guest_count=2)
    rsvp, created, _ = await _upsert(
        member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending", guest_count=2
    )
    assert created is False
    assert rsvp.guest_count == 2


@pytest.mark.asyncio
async def test_switch_to_maybe_skips_capacity_check(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(capacity=3)
    _fill(store, event, 3)
    rsvp, created, _ = await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="maybe")
    assert created is True
    assert rsvp.status == RsvpStatus.MAYBE


@pytest.mark.asyncio
async def test_client_supplied_ids_are_ignored(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event()
    other = store.add_event()
    rsvp, _, _ = await uc.upsert_rsvp(
        member_repo,
        event_repo,
        rsvp_repo,
        event_id=other.id,
        user_id="parent",
        payload={"status": "maybe", "event_id": event.id, "user_id": "someone-else"},
    )
    assert rsvp.event_id == other.id
    assert rsvp.user_id == "parent"
    assert await rsvp_repo.get_for_user(event.id, "parent") is None


@pytest.mark.asyncio
async def test_event_row_is_locked_for_capacity_check(member_repo, event_repo, rsvp_repo, store) -> None:
    store.add_member("parent")
    event = store.add_event(capacity=5)
    await _upsert(member_repo, event_repo, rsvp_repo, event_id=event.id, status="attending")
    assert store.locked == [event.id]


@pytest.mark.asyncio
async def test_delete_is_idempotent(rsvp_repo, store) -> None:
    event = store.add_event()
    store.add_rsvp(event, "parent")
    assert await uc.delete_rsvp(rsvp_repo, event_id=event.id, user_id="parent") == 1
    assert await uc.delete_rsvp(rsvp_repo, event_id=event.id, user_id="parent") == 0
    assert store.rsvps == []


@pytest.mark.asyncio
async def test_delete_only_touches_callers_row(rsvp_repo, store) -> None:
    event = store.add_event()
    store.add_rsvp(event, "parent")
    store.add_rsvp(event, "neighbor")
    await uc.delete_rsvp(rsvp_repo, event_id=event.id, user_id="parent")
    assert [r.user_id for r in store.rsvps] == ["neighbor"]


@pytest.mark.asyncio
async def test_delete_requires_identity_and_event_id(rsvp_repo) -> None:
    with pytest.raises(UnauthenticatedError):
        await uc.delete_rsvp(rsvp_repo, event_id="e", user_id=None)
    with pytest.raises(BadRequestError) as excinfo:
        await uc.delete_rsvp(rsvp_repo, event_id="", user_id="parent")
    assert str(excinfo.value) == "Event ID is required"
