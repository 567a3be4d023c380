from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import ColumnElement, Select, case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.repositories import (
    EventCounts,
    EventFilters,
    EventRepository,
    MemberRepository,
    RsvpRepository,
    VolunteerRepository,
)
from ..models import Event, EventRsvp, Member, RsvpStatus, VolunteerSignup, VolunteerSlot
from ..utils.time import utc_now_naive


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user search text is matched literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _event_conditions(filters: EventFilters) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = [Event.visibility.in_(filters.visibilities)]
    if filters.type is not None:
        conditions.append(Event.type == filters.type)
    if filters.start_date is not None:
        conditions.append(Event.start_time >= filters.start_date)
    if filters.end_date is not None:
        conditions.append(Event.start_time <= filters.end_date)
    if filters.search:
        like = f"%{escape_like(filters.search)}%"
        conditions.append(
            or_(
                Event.title.ilike(like, escape="\\"),
                Event.description.ilike(like, escape="\\"),
            )
        )
    return conditions


def _reserved_spots() -> ColumnElement[int]:
    # attending member plus guests; other statuses hold nothing
    return case(
        (EventRsvp.status == RsvpStatus.ATTENDING, 1 + EventRsvp.guest_count),
        else_=0,
    )


def _rsvp_counts_subquery():
    return (
        select(
            EventRsvp.event_id.label("event_id"),
            func.count(EventRsvp.id).label("rsvp_count"),
            func.coalesce(func.sum(_reserved_spots()), 0).label("attending_count"),
        )
        .group_by(EventRsvp.event_id)
        .subquery()
    )


class SqlAlchemyMemberRepository(MemberRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_user_id(self, user_id: str) -> Member | None:
        result = await self.session.scalar(select(Member).where(Member.user_id == user_id))
        return result if isinstance(result, Member) else None

    async def list_by_user_ids(self, user_ids: Iterable[str]) -> dict[str, Member]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = await self.session.scalars(select(Member).where(Member.user_id.in_(ids)))
        return {member.user_id: member for member in rows.all()}


class SqlAlchemyEventRepository(EventRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, event_id: str) -> Event | None:
        result = await self.session.scalar(select(Event).where(Event.id == event_id))
        return result if isinstance(result, Event) else None

    async def get_for_update(self, event_id: str) -> Event | None:
        result = await self.session.scalar(select(Event).where(Event.id == event_id).with_for_update())
        return result if isinstance(result, Event) else None

    async def list_visible(
        self,
        filters: EventFilters,
        *,
        limit: int,
        offset: int,
    ) -> Tuple[List[Tuple[Event, EventCounts]], int]:
        conditions = _event_conditions(filters)
        counts = _rsvp_counts_subquery()
        stmt: Select[Tuple[Event, Any, Any]] = (
            select(
                Event,
                func.coalesce(counts.c.rsvp_count, 0),
                func.coalesce(counts.c.attending_count, 0),
            )
            .outerjoin(counts, counts.c.event_id == Event.id)
            .where(*conditions)
            .order_by(Event.start_time.asc(), Event.id)
            .limit(limit)
            .offset(offset)
        )
        rows = await self.session.execute(stmt)
        items = [
            (event, EventCounts(rsvp_count=int(rsvp_count), attending_count=int(attending_count)))
            for event, rsvp_count, attending_count in rows.all()
        ]
        total = await self.session.scalar(select(func.count(Event.id)).where(*conditions))
        return items, int(total or 0)

    async def counts(self, event_id: str) -> EventCounts:
        stmt = select(func.count(EventRsvp.id), func.coalesce(func.sum(_reserved_spots()), 0)).where(
            EventRsvp.event_id == event_id
        )
        row = (await self.session.execute(stmt)).one()
        return EventCounts(rsvp_count=int(row[0] or 0), attending_count=int(row[1] or 0))

    async def create(self, *, created_by: str, data: dict[str, Any]) -> Event:
        now = utc_now_naive()
        event = Event(**data, created_by=created_by, created_at=now, updated_at=now)
        self.session.add(event)
        await self.session.flush()
        return event

    async def update(self, event: Event, data: dict[str, Any]) -> Event:
        for key, value in data.items():
            setattr(event, key, value)
        event.updated_at = utc_now_naive()
        self.session.add(event)
        await self.session.flush()
        return event

    async def delete(self, event: Event) -> None:
        await self.session.delete(event)
        await self.session.flush()


class SqlAlchemyRsvpRepository(RsvpRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_for_user(self, event_id: str, user_id: str) -> EventRsvp | None:
        stmt = select(EventRsvp).where(EventRsvp.event_id == event_id, EventRsvp.user_id == user_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, EventRsvp) else None

    async def sum_reserved_excluding(self, event_id: str, user_id: str) -> int:
        stmt = select(func.coalesce(func.sum(1 + EventRsvp.guest_count), 0)).where(
            EventRsvp.event_id == event_id,
            EventRsvp.status == RsvpStatus.ATTENDING,
            EventRsvp.user_id != user_id,
        )
        return int(await self.session.scalar(stmt) or 0)

    async def create(
        self,
        *,
        event_id: str,
        user_id: str,
        status: RsvpStatus,
        guest_count: int,
        notes: Optional[str],
    ) -> EventRsvp:
        now = utc_now_naive()
        rsvp = EventRsvp(
            event_id=event_id,
            user_id=user_id,
            status=status,
            guest_count=guest_count,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.session.add(rsvp)
        await self.session.flush()
        return rsvp

    async def update(
        self,
        rsvp: EventRsvp,
        *,
        status: RsvpStatus,
        guest_count: int,
        notes: Optional[str],
    ) -> EventRsvp:
        rsvp.status = status
        rsvp.guest_count = guest_count
        rsvp.notes = notes
        rsvp.updated_at = utc_now_naive()
        self.session.add(rsvp)
        await self.session.flush()
        return rsvp

    async def delete_for_user(self, event_id: str, user_id: str) -> int:
        result = await self.session.execute(
            delete(EventRsvp).where(EventRsvp.event_id == event_id, EventRsvp.user_id == user_id)
        )
        return int(result.rowcount or 0)

    async def list_for_user(self, user_id: str, event_ids: Iterable[str]) -> dict[str, EventRsvp]:
        ids = list(event_ids)
        if not ids:
            return {}
        rows = await self.session.scalars(
            select(EventRsvp).where(EventRsvp.user_id == user_id, EventRsvp.event_id.in_(ids))
        )
        return {rsvp.event_id: rsvp for rsvp in rows.all()}

    async def list_attending(self, event_id: str) -> List[EventRsvp]:
        rows = await self.session.scalars(
            select(EventRsvp)
            .where(EventRsvp.event_id == event_id, EventRsvp.status == RsvpStatus.ATTENDING)
            .order_by(EventRsvp.created_at.asc())
        )
        return list(rows.all())


class SqlAlchemyVolunteerRepository(VolunteerRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_slot(self, slot_id: str) -> VolunteerSlot | None:
        result = await self.session.scalar(select(VolunteerSlot).where(VolunteerSlot.id == slot_id))
        return result if isinstance(result, VolunteerSlot) else None

    async def get_slot_for_update(self, slot_id: str) -> VolunteerSlot | None:
        result = await self.session.scalar(
            select(VolunteerSlot).where(VolunteerSlot.id == slot_id).with_for_update()
        )
        return result if isinstance(result, VolunteerSlot) else None

    async def list_slots(self, event_id: str) -> List[Tuple[VolunteerSlot, List[VolunteerSignup]]]:
        rows = await self.session.scalars(
            select(VolunteerSlot)
            .options(selectinload(VolunteerSlot.signups))
            .where(VolunteerSlot.event_id == event_id)
            .order_by(VolunteerSlot.created_at.asc())
        )
        return [(slot, list(slot.signups)) for slot in rows.all()]

    async def create_slots(self, event_id: str, slots: List[dict[str, Any]]) -> List[VolunteerSlot]:
        now = utc_now_naive()
        created = [VolunteerSlot(**data, event_id=event_id, created_at=now) for data in slots]
        self.session.add_all(created)
        await self.session.flush()
        return created

    async def get_signup_for_user(self, slot_id: str, user_id: str) -> VolunteerSignup | None:
        stmt = select(VolunteerSignup).where(
            VolunteerSignup.slot_id == slot_id,
            VolunteerSignup.user_id == user_id,
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, VolunteerSignup) else None

    async def sum_quantity_excluding(self, slot_id: str, user_id: str) -> int:
        stmt = select(func.coalesce(func.sum(VolunteerSignup.quantity), 0)).where(
            VolunteerSignup.slot_id == slot_id,
            VolunteerSignup.user_id != user_id,
        )
        return int(await self.session.scalar(stmt) or 0)

    async def create_signup(
        self,
        *,
        slot_id: str,
        user_id: str,
        quantity: int,
        notes: Optional[str],
    ) -> VolunteerSignup:
        now = utc_now_naive()
        signup = VolunteerSignup(
            slot_id=slot_id,
            user_id=user_id,
            quantity=quantity,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.session.add(signup)
        await self.session.flush()
        return signup

    async def update_signup(
        self,
        signup: VolunteerSignup,
        *,
        quantity: int,
        notes: Optional[str],
    ) -> VolunteerSignup:
        signup.quantity = quantity
        signup.notes = notes
        signup.updated_at = utc_now_naive()
        self.session.add(signup)
        await self.session.flush()
        return signup

    async def delete_signup_for_user(self, slot_id: str, user_id: str) -> int:
        result = await self.session.execute(
            delete(VolunteerSignup).where(
                VolunteerSignup.slot_id == slot_id,
                VolunteerSignup.user_id == user_id,
            )
        )
        return int(result.rowcount or 0)
