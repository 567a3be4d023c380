from typing import Any, Optional

from ..domain.errors import (
    BadRequestError,
    EventNotFoundError,
    ForbiddenError,
    NotAMemberError,
    SlotNotFoundError,
    UnauthenticatedError,
)
from ..domain.repositories import EventRepository, MemberRepository, VolunteerRepository
from ..domain.services import SlotSnapshot, can_user_edit_event, can_user_view_event, validate_signup_capacity
from ..models import VolunteerSignup, VolunteerSlot
from ..schemas import VolunteerSignupRequest, VolunteerSlotCreate, parse_request


async def upsert_signup(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    volunteer_repo: VolunteerRepository,
    *,
    event_id: str,
    user_id: Optional[str],
    payload: Any,
) -> tuple[VolunteerSignup, VolunteerSlot, bool]:
    """
    Sign the caller up for a volunteer slot of `event_id`, or change their existing signup.

    A slot that belongs to another event is reported exactly like a missing slot.
    Returns the stored signup, its slot, and whether the signup was inserted.
    """
    if not user_id:
        raise UnauthenticatedError("You must be logged in to volunteer")
    if not event_id:
        raise BadRequestError("Event ID is required")

    member = await member_repo.get_by_user_id(user_id)
    if member is None:
        raise NotAMemberError("You must be a registered member to volunteer")

    request = parse_request(VolunteerSignupRequest, payload, "Invalid volunteer signup data")

    event = await event_repo.get(event_id)
    if event is None:
        raise EventNotFoundError("Event not found")
    if not can_user_view_event(event.visibility, member.role, True):
        raise ForbiddenError("You do not have permission to volunteer for this event")

    slot_id = str(request.slot_id)
    slot = await volunteer_repo.get_slot_for_update(slot_id)
    if slot is None or slot.event_id != event.id:
        raise SlotNotFoundError("Volunteer slot not found")

    existing = await volunteer_repo.get_signup_for_user(slot.id, user_id)
    others_total = await volunteer_repo.sum_quantity_excluding(slot.id, user_id)
    validate_signup_capacity(
        SlotSnapshot(quantity=slot.quantity, others_total=others_total),
        quantity=request.quantity,
    )

    if existing is None:
        signup = await volunteer_repo.create_signup(
            slot_id=slot.id,
            user_id=user_id,
            quantity=request.quantity,
            notes=request.notes,
        )
        return signup, slot, True

    signup = await volunteer_repo.update_signup(existing, quantity=request.quantity, notes=request.notes)
    return signup, slot, False


async def delete_signup(
    volunteer_repo: VolunteerRepository,
    *,
    event_id: str,
    slot_id: Optional[str],
    user_id: Optional[str],
) -> int:
    """Cancel the caller's signup for a slot of `event_id`. A missing signup is not an error."""
    if not user_id:
        raise UnauthenticatedError("Unauthorized")
    if not event_id or not event_id.strip():
        raise BadRequestError("Event ID is required")
    if not slot_id:
        raise BadRequestError("Slot ID is required")

    slot = await volunteer_repo.get_slot(slot_id)
    if slot is None or slot.event_id != event_id:
        raise SlotNotFoundError("Volunteer slot not found")
    return await volunteer_repo.delete_signup_for_user(slot.id, user_id)


async def list_slots(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    volunteer_repo: VolunteerRepository,
    *,
    event_id: str,
    user_id: Optional[str],
) -> list[tuple[VolunteerSlot, list[VolunteerSignup]]]:
    event = await event_repo.get(event_id)
    if event is None:
        raise EventNotFoundError("Event not found")
    member = await member_repo.get_by_user_id(user_id) if user_id else None
    role = member.role if member is not None else None
    if not can_user_view_event(event.visibility, role, user_id is not None):
        raise ForbiddenError("You do not have permission to view this event")
    return await volunteer_repo.list_slots(event.id)


async def add_slots(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    volunteer_repo: VolunteerRepository,
    *,
    event_id: str,
    user_id: Optional[str],
    payload: Any,
) -> list[VolunteerSlot]:
    """Add one slot or a list of slots to an event. Only the creator or board/admin may do this."""
    if not user_id:
        raise UnauthenticatedError("Unauthorized")
    event = await event_repo.get(event_id)
    if event is None:
        raise EventNotFoundError("Event not found")
    member = await member_repo.get_by_user_id(user_id)
    role = member.role if member is not None else None
    if not can_user_edit_event(event.created_by, user_id, role):
        raise ForbiddenError("You do not have permission to manage volunteer slots for this event")

    items = payload if isinstance(payload, list) else [payload]
    slots = [parse_request(VolunteerSlotCreate, item, "Invalid volunteer slot data") for item in items]
    return await volunteer_repo.create_slots(event.id, [slot.model_dump() for slot in slots])
