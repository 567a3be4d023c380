from typing import Any, Optional

from ..domain.errors import (
    BadRequestError,
    EventAlreadyStartedError,
    EventNotFoundError,
    ForbiddenError,
    GuestsNotAllowedError,
    NotAMemberError,
    RsvpNotRequiredError,
    UnauthenticatedError,
)
from ..domain.repositories import EventRepository, MemberRepository, RsvpRepository
from ..domain.services import RsvpSnapshot, can_user_view_event, validate_guest_count, validate_rsvp_capacity
from ..models import MAX_GUESTS, EventRsvp, RsvpStatus
from ..schemas import RsvpRequest, parse_request
from ..utils.time import utc_now_naive


async def upsert_rsvp(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    rsvp_repo: RsvpRepository,
    *,
    event_id: str,
    user_id: Optional[str],
    payload: Any,
) -> tuple[EventRsvp, bool, Optional[RsvpStatus]]:
    """
    Create the caller's RSVP for an event or update it in place.

    Returns the stored row, whether it was inserted, and the status it had before
    (None on insert). `event_id`/`user_id` inside the payload are ignored: the event
    comes from the path and the user from the session.
    The event row is locked for the rest of the transaction so that concurrent
    capacity checks for the same event are serialized.
    """
    if not user_id:
        raise UnauthenticatedError("You must be logged in to RSVP")
    if not event_id:
        raise BadRequestError("Event ID is required")

    member = await member_repo.get_by_user_id(user_id)
    if member is None:
        raise NotAMemberError("You must be a registered member to RSVP")

    request = parse_request(RsvpRequest, payload, "Invalid RSVP data")

    event = await event_repo.get_for_update(event_id)
    if event is None:
        raise EventNotFoundError("Event not found")
    if not can_user_view_event(event.visibility, member.role, True):
        raise ForbiddenError("You do not have permission to RSVP to this event")
    if not event.requires_rsvp:
        raise RsvpNotRequiredError("This event does not require RSVP")
    if utc_now_naive() >= event.start_time:
        raise EventAlreadyStartedError("Cannot RSVP to an event that has already started")

    attending = request.status == RsvpStatus.ATTENDING
    guest_count = request.guest_count
    if attending and not validate_guest_count(guest_count, event.allow_guests):
        raise GuestsNotAllowedError(
            f"Invalid guest count (max {MAX_GUESTS})" if event.allow_guests else "This event does not allow guests"
        )
    if not attending:
        # guests only hold spots on an attending RSVP
        guest_count = 0

    existing = await rsvp_repo.get_for_user(event.id, user_id)

    if attending:
        others_reserved = await rsvp_repo.sum_reserved_excluding(event.id, user_id)
        snapshot = RsvpSnapshot(capacity=event.capacity, others_reserved=others_reserved)
        validate_rsvp_capacity(snapshot, guest_count=guest_count)

    if existing is None:
        rsvp = await rsvp_repo.create(
            event_id=event.id,
            user_id=user_id,
            status=request.status,
            guest_count=guest_count,
            notes=request.notes,
        )
        return rsvp, True, None

    previous_status = existing.status
    rsvp = await rsvp_repo.update(
        existing,
        status=request.status,
        guest_count=guest_count,
        notes=request.notes,
    )
    return rsvp, False, previous_status


async def delete_rsvp(
    rsvp_repo: RsvpRepository,
    *,
    event_id: str,
    user_id: Optional[str],
) -> int:
    """Remove the caller's RSVP. Deleting an RSVP that does not exist succeeds. Returns rows removed."""
    if not user_id:
        raise UnauthenticatedError("Unauthorized")
    if not event_id or not event_id.strip():
        raise BadRequestError("Event ID is required")
    return await rsvp_repo.delete_for_user(event_id, user_id)
