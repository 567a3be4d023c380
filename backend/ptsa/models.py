from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, DateTime, Integer, String, Text

MAX_GUESTS = 10
MAX_SIGNUP_QUANTITY = 10
NOTES_MAX_LENGTH = 500


class Base(DeclarativeBase):
    pass


class MemberRole(StrEnum):
    MEMBER = "member"
    BOARD = "board"
    ADMIN = "admin"
    COMMITTEE_CHAIR = "committee_chair"
    TEACHER = "teacher"


class EventType(StrEnum):
    MEETING = "meeting"
    FUNDRAISER = "fundraiser"
    VOLUNTEER = "volunteer"
    SOCIAL = "social"
    EDUCATIONAL = "educational"


class LocationType(StrEnum):
    IN_PERSON = "in_person"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"


class EventVisibility(StrEnum):
    PUBLIC = "public"
    MEMBERS = "members"
    BOARD = "board"


class RsvpStatus(StrEnum):
    ATTENDING = "attending"
    NOT_ATTENDING = "not_attending"
    MAYBE = "maybe"


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


def _uuid() -> str:
    return str(uuid.uuid4())


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_members_user"),
        Index("idx_members_email", "email"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[MemberRole] = mapped_column(_str_enum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="chk_events_time"),
        CheckConstraint("capacity IS NULL OR capacity >= 1", name="chk_events_capacity"),
        Index("idx_events_start", "start_time"),
        Index("idx_events_visibility", "visibility"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[EventType] = mapped_column(_str_enum(EventType), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    location_type: Mapped[LocationType] = mapped_column(_str_enum(LocationType), nullable=False)
    location_details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    requires_rsvp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_guests: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    visibility: Mapped[EventVisibility] = mapped_column(
        _str_enum(EventVisibility), nullable=False, default=EventVisibility.MEMBERS
    )
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    rsvps: Mapped[list["EventRsvp"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )
    volunteer_slots: Mapped[list["VolunteerSlot"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )


class EventRsvp(Base):
    __tablename__ = "event_rsvps"
    __table_args__ = (
        CheckConstraint(f"guest_count >= 0 AND guest_count <= {MAX_GUESTS}", name="chk_rsvp_guest_count"),
        UniqueConstraint("event_id", "user_id", name="uq_rsvp_event_user"),
        Index("idx_rsvp_event", "event_id"),
        Index("idx_rsvp_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[RsvpStatus] = mapped_column(_str_enum(RsvpStatus), nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(String(NOTES_MAX_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    event: Mapped["Event"] = relationship(back_populates="rsvps")

    @property
    def reserved_spots(self) -> int:
        """Spots held against event capacity: the member plus their guests, if attending."""
        if self.status != RsvpStatus.ATTENDING:
            return 0
        return 1 + (self.guest_count or 0)


class VolunteerSlot(Base):
    __tablename__ = "event_volunteer_slots"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_slot_quantity"),
        Index("idx_slot_event", "event_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    event: Mapped["Event"] = relationship(back_populates="volunteer_slots")
    signups: Mapped[list["VolunteerSignup"]] = relationship(
        back_populates="slot", cascade="all, delete-orphan", passive_deletes=True
    )


class VolunteerSignup(Base):
    __tablename__ = "event_volunteer_signups"
    __table_args__ = (
        CheckConstraint(
            f"quantity >= 1 AND quantity <= {MAX_SIGNUP_QUANTITY}", name="chk_signup_quantity"
        ),
        UniqueConstraint("slot_id", "user_id", name="uq_signup_slot_user"),
        Index("idx_signup_slot", "slot_id"),
        Index("idx_signup_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    slot_id: Mapped[str] = mapped_column(
        ForeignKey("event_volunteer_slots.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(NOTES_MAX_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slot: Mapped["VolunteerSlot"] = relationship(back_populates="signups")
