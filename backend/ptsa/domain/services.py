from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ..models import MAX_GUESTS, EventVisibility, LocationType
from .errors import EventFullError, SlotFullError

EVENT_START_GRACE = timedelta(seconds=60)

_PRIVILEGED_ROLES = frozenset({"admin", "board"})


def validate_guest_count(guest_count: int, allow_guests: bool) -> bool:
    if guest_count < 0 or guest_count > MAX_GUESTS:
        return False
    if not allow_guests:
        return guest_count == 0
    return True


def validate_capacity(current: int, adding: int, capacity: Optional[int]) -> bool:
    """Return True if `adding` more spots fit next to `current` under `capacity` (None is unlimited)."""
    if capacity is None:
        return True
    if capacity == 0:
        return current + adding == 0
    return current + adding <= capacity


def is_privileged(role: Optional[str]) -> bool:
    return role is not None and str(role) in _PRIVILEGED_ROLES


def can_user_view_event(visibility: str, role: Optional[str], is_authenticated: bool) -> bool:
    if visibility == EventVisibility.PUBLIC:
        return True
    if visibility == EventVisibility.MEMBERS:
        return is_authenticated
    if visibility == EventVisibility.BOARD:
        return is_authenticated and is_privileged(role)
    return False


def visible_tiers(role: Optional[str], is_authenticated: bool) -> list[EventVisibility]:
    """Visibility tiers a caller may list, derived from can_user_view_event."""
    return [tier for tier in EventVisibility if can_user_view_event(tier, role, is_authenticated)]


def can_user_edit_event(created_by: str, user_id: str, role: Optional[str]) -> bool:
    if is_privileged(role):
        return True
    return created_by == user_id


def can_user_view_attendees(created_by: str, user_id: str, role: Optional[str]) -> bool:
    return can_user_edit_event(created_by, user_id, role)


def validate_event_times(start: datetime, end: datetime, *, now: Optional[datetime] = None) -> bool:
    """Start may lag `now` by up to a minute of clock skew; end must follow start.

    All three datetimes are naive UTC.
    """
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    if start < now - EVENT_START_GRACE:
        return False
    return end > start


@dataclass(frozen=True)
class RsvpSnapshot:
    capacity: Optional[int]
    # spots held by every attending RSVP except the caller's own
    others_reserved: int


def validate_rsvp_capacity(snapshot: RsvpSnapshot, *, guest_count: int) -> Optional[int]:
    """
    Pure validation of an attending RSVP for one member plus `guest_count` guests.
    Returns remaining spots after the RSVP (None when unlimited). Raises EventFullError otherwise.
    """
    requested = 1 + guest_count
    if not validate_capacity(snapshot.others_reserved, requested, snapshot.capacity):
        raise EventFullError("Event is full")
    if snapshot.capacity is None:
        return None
    return snapshot.capacity - snapshot.others_reserved - requested


@dataclass(frozen=True)
class SlotSnapshot:
    quantity: int
    # volunteer units held by every signup except the caller's own
    others_total: int


def validate_signup_capacity(snapshot: SlotSnapshot, *, quantity: int) -> int:
    """Returns remaining units after the signup. Raises SlotFullError reporting what is left otherwise."""
    remaining = snapshot.quantity - snapshot.others_total
    if snapshot.others_total + quantity > snapshot.quantity:
        raise SlotFullError(remaining)
    return remaining - quantity


def location_error(location_type: str, details: dict[str, Any]) -> Optional[str]:
    """Return a message if the location details do not suit the location type, else None."""
    if location_type in (LocationType.VIRTUAL, LocationType.HYBRID) and not details.get("virtual_link"):
        return "Virtual link is required for virtual/hybrid events"
    if location_type in (LocationType.IN_PERSON, LocationType.HYBRID) and not details.get("address"):
        return "Address is required for in-person/hybrid events"
    return None


def available_spots(capacity: Optional[int], attending: int) -> Optional[int]:
    if capacity is None:
        return None
    return max(0, capacity - attending)
