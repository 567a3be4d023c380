from __future__ import annotations

import itertools
import uuid
from datetime import timedelta
from typing import Any, Iterable, Optional

import pytest
from ptsa.domain.repositories import EventCounts, EventFilters
from ptsa.models import (
    Event,
    EventRsvp,
    EventType,
    EventVisibility,
    LocationType,
    Member,
    MemberRole,
    RsvpStatus,
    VolunteerSignup,
    VolunteerSlot,
)
from ptsa.utils.time import utc_now_naive


class InMemoryStore:
    """Rows shared by the fake repositories of one test."""

    def __init__(self) -> None:
        self.members: dict[str, Member] = {}
        self.events: dict[str, Event] = {}
        self.rsvps: list[EventRsvp] = []
        self.slots: dict[str, VolunteerSlot] = {}
        self.signups: list[VolunteerSignup] = []
        self._ids = itertools.count(1)
        self.locked: list[str] = []

    def next_id(self) -> int:
        return next(self._ids)

    def add_member(self, user_id: str, role: MemberRole = MemberRole.MEMBER) -> Member:
        now = utc_now_naive()
        member = Member(
            id=self.next_id(),
            user_id=user_id,
            first_name="Pat",
            last_name=user_id.title(),
            email=f"{user_id}@example.org",
            phone=None,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self.members[user_id] = member
        return member

    def add_event(self, **overrides: Any) -> Event:
        now = utc_now_naive()
        start = now + timedelta(days=7)
        values: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "title": "Spring Carnival",
            "description": "Games and food",
            "type": EventType.FUNDRAISER,
            "start_time": start,
            "end_time": start + timedelta(hours=3),
            "location_type": LocationType.IN_PERSON,
            "location_details": {"address": "100 School Rd"},
            "capacity": None,
            "requires_rsvp": True,
            "allow_guests": True,
            "visibility": EventVisibility.MEMBERS,
            "created_by": "organizer",
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        event = Event(**values)
        self.events[event.id] = event
        return event

    def add_rsvp(
        self,
        event: Event,
        user_id: str,
        *,
        status: RsvpStatus = RsvpStatus.ATTENDING,
        guest_count: int = 0,
    ) -> EventRsvp:
        now = utc_now_naive()
        rsvp = EventRsvp(
            id=self.next_id(),
            event_id=event.id,
            user_id=user_id,
            status=status,
            guest_count=guest_count,
            notes=None,
            created_at=now,
            updated_at=now,
        )
        self.rsvps.append(rsvp)
        return rsvp

    def add_slot(self, event: Event, *, quantity: int, title: str = "Ticket booth") -> VolunteerSlot:
        slot = VolunteerSlot(
            id=str(uuid.uuid4()),
            event_id=event.id,
            title=title,
            description=None,
            quantity=quantity,
            created_at=utc_now_naive(),
        )
        self.slots[slot.id] = slot
        return slot

    def add_signup(self, slot: VolunteerSlot, user_id: str, *, quantity: int) -> VolunteerSignup:
        now = utc_now_naive()
        signup = VolunteerSignup(
            id=self.next_id(),
            slot_id=slot.id,
            user_id=user_id,
            quantity=quantity,
            notes=None,
            created_at=now,
            updated_at=now,
        )
        self.signups.append(signup)
        return signup


class FakeMemberRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get_by_user_id(self, user_id: str) -> Optional[Member]:
        return self.store.members.get(user_id)

    async def list_by_user_ids(self, user_ids: Iterable[str]) -> dict[str, Member]:
        return {uid: self.store.members[uid] for uid in user_ids if uid in self.store.members}


class FakeEventRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, event_id: str) -> Optional[Event]:
        return self.store.events.get(event_id)

    async def get_for_update(self, event_id: str) -> Optional[Event]:
        self.store.locked.append(event_id)
        return self.store.events.get(event_id)

    def _counts(self, event_id: str) -> EventCounts:
        rows = [r for r in self.store.rsvps if r.event_id == event_id]
        return EventCounts(rsvp_count=len(rows), attending_count=sum(r.reserved_spots for r in rows))

    async def counts(self, event_id: str) -> EventCounts:
        return self._counts(event_id)

    async def list_visible(
        self,
        filters: EventFilters,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[tuple[Event, EventCounts]], int]:
        matches = []
        for event in self.store.events.values():
            if event.visibility not in filters.visibilities:
                continue
            if filters.type is not None and event.type != filters.type:
                continue
            if filters.start_date is not None and event.start_time < filters.start_date:
                continue
            if filters.end_date is not None and event.start_time > filters.end_date:
                continue
            if filters.search:
                needle = filters.search.lower()
                haystack = f"{event.title} {event.description or ''}".lower()
                if needle not in haystack:
                    continue
            matches.append(event)
        matches.sort(key=lambda e: e.start_time)
        page = matches[offset : offset + limit]
        return [(event, self._counts(event.id)) for event in page], len(matches)

    async def create(self, *, created_by: str, data: dict[str, Any]) -> Event:
        now = utc_now_naive()
        event = Event(id=str(uuid.uuid4()), **data, created_by=created_by, created_at=now, updated_at=now)
        self.store.events[event.id] = event
        return event

    async def update(self, event: Event, data: dict[str, Any]) -> Event:
        for key, value in data.items():
            setattr(event, key, value)
        event.updated_at = utc_now_naive()
        return event

    async def delete(self, event: Event) -> None:
        self.store.events.pop(event.id, None)
        self.store.rsvps = [r for r in self.store.rsvps if r.event_id != event.id]


class FakeRsvpRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.created = 0
        self.updated = 0

    async def get_for_user(self, event_id: str, user_id: str) -> Optional[EventRsvp]:
        for rsvp in self.store.rsvps:
            if rsvp.event_id == event_id and rsvp.user_id == user_id:
                return rsvp
        return None

    async def sum_reserved_excluding(self, event_id: str, user_id: str) -> int:
        return sum(
            r.reserved_spots for r in self.store.rsvps if r.event_id == event_id and r.user_id != user_id
        )

    async def create(
        self,
        *,
        event_id: str,
        user_id: str,
        status: RsvpStatus,
        guest_count: int,
        notes: Optional[str],
    ) -> EventRsvp:
        self.created += 1
        event = self.store.events[event_id]
        rsvp = self.store.add_rsvp(event, user_id, status=status, guest_count=guest_count)
        rsvp.notes = notes
        return rsvp

    async def update(
        self,
        rsvp: EventRsvp,
        *,
        status: RsvpStatus,
        guest_count: int,
        notes: Optional[str],
    ) -> EventRsvp:
        self.updated += 1
        rsvp.status = status
        rsvp.guest_count = guest_count
        rsvp.notes = notes
        return rsvp

    async def delete_for_user(self, event_id: str, user_id: str) -> int:
        before = len(self.store.rsvps)
        self.store.rsvps = [
            r for r in self.store.rsvps if not (r.event_id == event_id and r.user_id == user_id)
        ]
        return before - len(self.store.rsvps)

    async def list_for_user(self, user_id: str, event_ids: Iterable[str]) -> dict[str, EventRsvp]:
        ids = set(event_ids)
        return {r.event_id: r for r in self.store.rsvps if r.user_id == user_id and r.event_id in ids}

    async def list_attending(self, event_id: str) -> list[EventRsvp]:
        return [r for r in self.store.rsvps if r.event_id == event_id and r.status == RsvpStatus.ATTENDING]


class FakeVolunteerRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.created = 0
        self.updated = 0

    async def get_slot(self, slot_id: str) -> Optional[VolunteerSlot]:
        return self.store.slots.get(slot_id)

    async def get_slot_for_update(self, slot_id: str) -> Optional[VolunteerSlot]:
        self.store.locked.append(slot_id)
        return self.store.slots.get(slot_id)

    async def list_slots(self, event_id: str) -> list[tuple[VolunteerSlot, list[VolunteerSignup]]]:
        return [
            (slot, [s for s in self.store.signups if s.slot_id == slot.id])
            for slot in self.store.slots.values()
            if slot.event_id == event_id
        ]

    async def create_slots(self, event_id: str, slots: list[dict[str, Any]]) -> list[VolunteerSlot]:
        event = self.store.events[event_id]
        created = []
        for data in slots:
            slot = self.store.add_slot(event, quantity=data["quantity"], title=data["title"])
            slot.description = data.get("description")
            created.append(slot)
        return created

    async def get_signup_for_user(self, slot_id: str, user_id: str) -> Optional[VolunteerSignup]:
        for signup in self.store.signups:
            if signup.slot_id == slot_id and signup.user_id == user_id:
                return signup
        return None

    async def sum_quantity_excluding(self, slot_id: str, user_id: str) -> int:
        return sum(s.quantity for s in self.store.signups if s.slot_id == slot_id and s.user_id != user_id)

    async def create_signup(
        self,
        *,
        slot_id: str,
        user_id: str,
        quantity: int,
        notes: Optional[str],
    ) -> VolunteerSignup:
        self.created += 1
        signup = self.store.add_signup(self.store.slots[slot_id], user_id, quantity=quantity)
        signup.notes = notes
        return signup

    async def update_signup(
        self,
        signup: VolunteerSignup,
        *,
        quantity: int,
        notes: Optional[str],
    ) -> VolunteerSignup:
        self.updated += 1
        signup.quantity = quantity
        signup.notes = notes
        return signup

    async def delete_signup_for_user(self, slot_id: str, user_id: str) -> int:
        before = len(self.store.signups)
        self.store.signups = [
            s for s in self.store.signups if not (s.slot_id == slot_id and s.user_id == user_id)
        ]
        return before - len(self.store.signups)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def member_repo(store: InMemoryStore) -> FakeMemberRepo:
    return FakeMemberRepo(store)


@pytest.fixture
def event_repo(store: InMemoryStore) -> FakeEventRepo:
    return FakeEventRepo(store)


@pytest.fixture
def rsvp_repo(store: InMemoryStore) -> FakeRsvpRepo:
    return FakeRsvpRepo(store)


@pytest.fixture
def volunteer_repo(store: InMemoryStore) -> FakeVolunteerRepo:
    return FakeVolunteerRepo(store)
