from datetime import datetime
from typing import Any, Dict, List, Optional

from ..domain.errors import (
    EventNotFoundError,
    ForbiddenError,
    InvalidEventTimesError,
    InvalidInputError,
    NotAMemberError,
    UnauthenticatedError,
)
from ..domain.repositories import (
    EventFilters,
    EventRepository,
    MemberRepository,
    RsvpRepository,
    VolunteerRepository,
)
from ..domain.services import (
    available_spots,
    can_user_edit_event,
    can_user_view_attendees,
    can_user_view_event,
    is_privileged,
    location_error,
    validate_event_times,
    visible_tiers,
)
from ..models import Event, EventType, EventVisibility, MemberRole, VolunteerSlot
from ..schemas import CreateEventRequest, UpdateEventRequest, parse_request


async def _caller_role(member_repo: MemberRepository, user_id: Optional[str]) -> Optional[MemberRole]:
    if not user_id:
        return None
    member = await member_repo.get_by_user_id(user_id)
    return member.role if member is not None else None


async def list_events(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    rsvp_repo: RsvpRepository,
    *,
    user_id: Optional[str],
    type: Optional[EventType] = None,
    visibility: Optional[EventVisibility] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[List[Dict[str, Any]], int]:
    """
    List events the caller may see, ordered by start time.

    Anonymous callers see public events, members see public and members-only events,
    board/admin see everything. An explicit `visibility` filter narrows that set and
    never widens it.
    """
    role = await _caller_role(member_repo, user_id)
    tiers = visible_tiers(role, user_id is not None)
    if visibility is not None:
        tiers = [tier for tier in tiers if tier == visibility]
    if not tiers:
        return [], 0

    filters = EventFilters(
        visibilities=tiers,
        type=type,
        start_date=start_date,
        end_date=end_date,
        search=search.strip() if search else None,
    )
    rows, total = await event_repo.list_visible(filters, limit=limit, offset=offset)

    user_rsvps = {}
    if user_id and rows:
        user_rsvps = await rsvp_repo.list_for_user(user_id, [event.id for event, _ in rows])

    items: List[Dict[str, Any]] = []
    for event, counts in rows:
        items.append(
            {
                "event": event,
                "rsvp_count": counts.rsvp_count,
                "attending_count": counts.attending_count,
                "available_spots": available_spots(event.capacity, counts.attending_count),
                "user_rsvp": user_rsvps.get(event.id),
            }
        )
    return items, total


async def create_event(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    volunteer_repo: VolunteerRepository,
    *,
    user_id: Optional[str],
    payload: Any,
) -> tuple[Event, List[VolunteerSlot]]:
    """Create an event and its volunteer slots. Board/admin only; both writes share the caller's transaction."""
    if not user_id:
        raise UnauthenticatedError("Unauthorized")
    member = await member_repo.get_by_user_id(user_id)
    if member is None:
        raise NotAMemberError("User not found in members table. Please ensure you are registered.")
    if not is_privileged(member.role):
        raise ForbiddenError("Only board members and admins can create events")

    request = parse_request(CreateEventRequest, payload, "Invalid event data")
    record = request.event.to_record()
    if not validate_event_times(record["start_time"], record["end_time"]):
        raise InvalidEventTimesError("Event must start in the future and end after it starts")

    event = await event_repo.create(created_by=user_id, data=record)
    slots: List[VolunteerSlot] = []
    if request.volunteer_slots:
        slots = await volunteer_repo.create_slots(
            event.id, [slot.model_dump() for slot in request.volunteer_slots]
        )
    return event, slots


async def get_event_details(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    rsvp_repo: RsvpRepository,
    volunteer_repo: VolunteerRepository,
    *,
    event_id: str,
    user_id: Optional[str],
) -> Dict[str, Any]:
    event = await event_repo.get(event_id)
    if event is None:
        raise EventNotFoundError("Event not found")
    role = await _caller_role(member_repo, user_id)
    if not can_user_view_event(event.visibility, role, user_id is not None):
        raise ForbiddenError("You do not have permission to view this event")

    counts = await event_repo.counts(event.id)
    user_rsvp = await rsvp_repo.get_for_user(event.id, user_id) if user_id else None
    slots = await volunteer_repo.list_slots(event.id)
    return {
        "event": event,
        "rsvp_count": counts.rsvp_count,
        "attending_count": counts.attending_count,
        "available_spots": available_spots(event.capacity, counts.attending_count),
        "user_rsvp": user_rsvp,
        "volunteer_slots": slots,
        "can_edit": bool(user_id) and can_user_edit_event(event.created_by, user_id, role),
        "can_view_attendees": bool(user_id) and can_user_view_attendees(event.created_by, user_id, role),
    }


async def _load_editable(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    *,
    event_id: str,
    user_id: Optional[str],
    action: str,
) -> Event:
    if not user_id:
        raise UnauthenticatedError("Unauthorized")
    event = await event_repo.get_for_update(event_id)
    if event is None:
        raise EventNotFoundError("Event not found")
    role = await _caller_role(member_repo, user_id)
    if not can_user_edit_event(event.created_by, user_id, role):
        raise ForbiddenError(f"You do not have permission to {action} this event")
    return event


async def update_event(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    *,
    event_id: str,
    user_id: Optional[str],
    payload: Any,
) -> Event:
    event = await _load_editable(member_repo, event_repo, event_id=event_id, user_id=user_id, action="edit")
    request = parse_request(UpdateEventRequest, payload, "Invalid event data")
    changes = request.event.to_record()

    # the merged event must still satisfy the same invariants as a new one
    start = changes.get("start_time", event.start_time)
    end = changes.get("end_time", event.end_time)
    if end <= start:
        raise InvalidEventTimesError("End time must be after start time")
    message = location_error(
        changes.get("location_type", event.location_type),
        changes.get("location_details", event.location_details or {}),
    )
    if message:
        raise InvalidInputError(
            "Invalid event data",
            [{"loc": ["event", "location_details"], "msg": message, "type": "value_error"}],
        )
    return await event_repo.update(event, changes)


async def delete_event(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    *,
    event_id: str,
    user_id: Optional[str],
) -> Event:
    event = await _load_editable(member_repo, event_repo, event_id=event_id, user_id=user_id, action="delete")
    await event_repo.delete(event)
    return event


async def list_attendees(
    member_repo: MemberRepository,
    event_repo: EventRepository,
    rsvp_repo: RsvpRepository,
    *,
    event_id: str,
    user_id: Optional[str],
) -> Dict[str, Any]:
    """Attending RSVPs with member contact details, for the event's organizers."""
    if not user_id:
        raise UnauthenticatedError("Unauthorized")
    event = await event_repo.get(event_id)
    if event is None:
        raise EventNotFoundError("Event not found")
    role = await _caller_role(member_repo, user_id)
    if not can_user_view_attendees(event.created_by, user_id, role):
        raise ForbiddenError("You do not have permission to view attendees for this event")

    rsvps = await rsvp_repo.list_attending(event.id)
    members = await member_repo.list_by_user_ids(rsvp.user_id for rsvp in rsvps)
    attendees = []
    for rsvp in rsvps:
        member = members.get(rsvp.user_id)
        attendees.append(
            {
                "id": rsvp.id,
                "rsvp_date": rsvp.created_at,
                "guest_count": rsvp.guest_count,
                "notes": rsvp.notes,
                "member": None
                if member is None
                else {
                    "id": member.id,
                    "name": f"{member.first_name} {member.last_name}",
                    "email": member.email,
                    "phone": member.phone,
                },
            }
        )
    total_attendees = sum(rsvp.reserved_spots for rsvp in rsvps)
    return {
        "event": {"id": event.id, "title": event.title},
        "attendees": attendees,
        "total_attendees": total_attendees,
        "total_members": len(attendees),
        "total_guests": total_attendees - len(attendees),
    }
