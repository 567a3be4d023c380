from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol

from ..models import (
    Event,
    EventRsvp,
    EventType,
    EventVisibility,
    Member,
    RsvpStatus,
    VolunteerSignup,
    VolunteerSlot,
)


@dataclass(frozen=True)
class EventFilters:
    visibilities: list[EventVisibility]
    type: EventType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None


@dataclass(frozen=True)
class EventCounts:
    rsvp_count: int
    # reserved spots: one per attending member plus their guests
    attending_count: int


class MemberRepository(Protocol):
    async def get_by_user_id(self, user_id: str) -> Member | None: ...

    async def list_by_user_ids(self, user_ids: Iterable[str]) -> dict[str, Member]: ...


class EventRepository(Protocol):
    async def get(self, event_id: str) -> Event | None: ...

    async def get_for_update(self, event_id: str) -> Event | None: ...

    async def list_visible(
        self,
        filters: EventFilters,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[tuple[Event, EventCounts]], int]: ...

    async def counts(self, event_id: str) -> EventCounts: ...

    async def create(self, *, created_by: str, data: dict[str, Any]) -> Event: ...

    async def update(self, event: Event, data: dict[str, Any]) -> Event: ...

    async def delete(self, event: Event) -> None: ...


class RsvpRepository(Protocol):
    async def get_for_user(self, event_id: str, user_id: str) -> EventRsvp | None: ...

    async def sum_reserved_excluding(self, event_id: str, user_id: str) -> int: ...

    async def create(
        self,
        *,
        event_id: str,
        user_id: str,
        status: RsvpStatus,
        guest_count: int,
        notes: str | None,
    ) -> EventRsvp: ...

    async def update(
        self,
        rsvp: EventRsvp,
        *,
        status: RsvpStatus,
        guest_count: int,
        notes: str | None,
    ) -> EventRsvp: ...

    async def delete_for_user(self, event_id: str, user_id: str) -> int: ...

    async def list_for_user(self, user_id: str, event_ids: Iterable[str]) -> dict[str, EventRsvp]: ...

    async def list_attending(self, event_id: str) -> list[EventRsvp]: ...


class VolunteerRepository(Protocol):
    async def get_slot(self, slot_id: str) -> VolunteerSlot | None: ...

    async def get_slot_for_update(self, slot_id: str) -> VolunteerSlot | None: ...

    async def list_slots(self, event_id: str) -> list[tuple[VolunteerSlot, list[VolunteerSignup]]]: ...

    async def create_slots(self, event_id: str, slots: list[dict[str, Any]]) -> list[VolunteerSlot]: ...

    async def get_signup_for_user(self, slot_id: str, user_id: str) -> VolunteerSignup | None: ...

    async def sum_quantity_excluding(self, slot_id: str, user_id: str) -> int: ...

    async def create_signup(
        self,
        *,
        slot_id: str,
        user_id: str,
        quantity: int,
        notes: str | None,
    ) -> VolunteerSignup: ...

    async def update_signup(
        self,
        signup: VolunteerSignup,
        *,
        quantity: int,
        notes: str | None,
    ) -> VolunteerSignup: ...

    async def delete_signup_for_user(self, slot_id: str, user_id: str) -> int: ...
