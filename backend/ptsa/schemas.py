from datetime import datetime, timezone
from typing import Any, Optional, TypeVar
from urllib.parse import urlparse
from uuid import UUID

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from .domain.errors import InvalidInputError
from .domain.services import location_error
from .models import (
    MAX_GUESTS,
    MAX_SIGNUP_QUANTITY,
    NOTES_MAX_LENGTH,
    Event,
    EventRsvp,
    EventType,
    EventVisibility,
    LocationType,
    RsvpStatus,
    VolunteerSignup,
    VolunteerSlot,
)
from .utils.time import to_utc_naive, utc_naive_to_aware


def _iso_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = utc_naive_to_aware(dt)
    return dt.astimezone(timezone.utc).isoformat()


# Requests


class RsvpRequest(BaseModel):
    status: RsvpStatus
    guest_count: int = Field(default=0, ge=0, le=MAX_GUESTS)
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)


class VolunteerSignupRequest(BaseModel):
    slot_id: UUID
    quantity: int = Field(ge=1, le=MAX_SIGNUP_QUANTITY)
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)


class LocationDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    address: Optional[str] = None
    room: Optional[str] = None
    virtual_link: Optional[str] = None
    instructions: Optional[str] = None

    @field_validator("virtual_link")
    @classmethod
    def _check_link(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("virtual_link must be an http(s) URL")
        return value


class EventForm(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: EventType
    start_time: AwareDatetime
    end_time: AwareDatetime
    location_type: LocationType
    location_details: LocationDetails = Field(default_factory=LocationDetails)
    capacity: Optional[int] = Field(default=None, ge=1)
    requires_rsvp: bool
    allow_guests: bool
    visibility: EventVisibility

    @model_validator(mode="after")
    def _check_invariants(self) -> "EventForm":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        message = location_error(self.location_type, self.location_details.model_dump())
        if message:
            raise ValueError(message)
        return self

    def to_record(self) -> dict[str, Any]:
        data = self.model_dump()
        data["start_time"] = to_utc_naive(self.start_time)
        data["end_time"] = to_utc_naive(self.end_time)
        data["location_details"] = self.location_details.model_dump(exclude_none=True)
        return data


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    type: Optional[EventType] = None
    start_time: Optional[AwareDatetime] = None
    end_time: Optional[AwareDatetime] = None
    location_type: Optional[LocationType] = None
    location_details: Optional[LocationDetails] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    requires_rsvp: Optional[bool] = None
    allow_guests: Optional[bool] = None
    visibility: Optional[EventVisibility] = None

    def to_record(self) -> dict[str, Any]:
        """Only the fields the client sent; `capacity: null` clears the limit."""
        data = self.model_dump(exclude_unset=True)
        for key in ("start_time", "end_time"):
            if data.get(key) is not None:
                data[key] = to_utc_naive(data[key])
        if self.location_details is not None:
            data["location_details"] = self.location_details.model_dump(exclude_none=True)
        return {k: v for k, v in data.items() if v is not None or k in ("capacity", "description")}


class VolunteerSlotCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    quantity: int = Field(ge=1)


class CreateEventRequest(BaseModel):
    event: EventForm
    volunteer_slots: list[VolunteerSlotCreate] = Field(default_factory=list)


class UpdateEventRequest(BaseModel):
    event: EventUpdate


# Responses


class RsvpRead(BaseModel):
    id: int
    event_id: str
    user_id: str
    status: RsvpStatus
    guest_count: int
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _iso_utc(dt)

    @classmethod
    def from_db(cls, *, rsvp: EventRsvp) -> "RsvpRead":
        return cls(
            id=rsvp.id,
            event_id=rsvp.event_id,
            user_id=rsvp.user_id,
            status=rsvp.status,
            guest_count=rsvp.guest_count,
            notes=rsvp.notes,
            created_at=rsvp.created_at,
            updated_at=rsvp.updated_at,
        )


class SignupRead(BaseModel):
    id: int
    slot_id: str
    user_id: str
    quantity: int
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _iso_utc(dt)

    @classmethod
    def from_db(cls, *, signup: VolunteerSignup) -> "SignupRead":
        return cls(
            id=signup.id,
            slot_id=signup.slot_id,
            user_id=signup.user_id,
            quantity=signup.quantity,
            notes=signup.notes,
            created_at=signup.created_at,
            updated_at=signup.updated_at,
        )


class SlotRead(BaseModel):
    id: str
    event_id: str
    title: str
    description: Optional[str]
    quantity: int
    created_at: datetime
    total_signups: int = 0
    available_spots: int = 0
    signups: list[SignupRead] = Field(default_factory=list)

    @field_serializer("created_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _iso_utc(dt)

    @classmethod
    def from_db(cls, *, slot: VolunteerSlot, signups: Optional[list[VolunteerSignup]] = None) -> "SlotRead":
        signups = signups or []
        total = sum(signup.quantity for signup in signups)
        return cls(
            id=slot.id,
            event_id=slot.event_id,
            title=slot.title,
            description=slot.description,
            quantity=slot.quantity,
            created_at=slot.created_at,
            total_signups=total,
            available_spots=slot.quantity - total,
            signups=[SignupRead.from_db(signup=signup) for signup in signups],
        )


class EventRead(BaseModel):
    id: str
    title: str
    description: Optional[str]
    type: EventType
    start_time: datetime
    end_time: datetime
    location_type: LocationType
    location_details: dict[str, Any]
    capacity: Optional[int]
    requires_rsvp: bool
    allow_guests: bool
    visibility: EventVisibility
    created_by: str
    created_at: datetime
    updated_at: datetime

    @field_serializer("start_time", "end_time", "created_at", "updated_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _iso_utc(dt)

    @staticmethod
    def fields_from_db(event: Event) -> dict[str, Any]:
        return {
            "id": event.id,
            "title": event.title,
            "description": event.description,
            "type": event.type,
            "start_time": event.start_time,
            "end_time": event.end_time,
            "location_type": event.location_type,
            "location_details": dict(event.location_details or {}),
            "capacity": event.capacity,
            "requires_rsvp": event.requires_rsvp,
            "allow_guests": event.allow_guests,
            "visibility": event.visibility,
            "created_by": event.created_by,
            "created_at": event.created_at,
            "updated_at": event.updated_at,
        }

    @classmethod
    def from_db(cls, *, event: Event) -> "EventRead":
        return cls(**cls.fields_from_db(event))


class EventWithCounts(EventRead):
    rsvp_count: int = 0
    attending_count: int = 0
    available_spots: Optional[int] = None
    user_rsvp: Optional[RsvpRead] = None


class EventListResponse(BaseModel):
    events: list[EventWithCounts]
    total: int


class EventDetails(EventWithCounts):
    volunteer_slots: list[SlotRead] = Field(default_factory=list)
    can_edit: bool = False
    can_view_attendees: bool = False


class AttendeeMember(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str]


class AttendeeRead(BaseModel):
    id: int
    rsvp_date: datetime
    guest_count: int
    notes: Optional[str]
    member: Optional[AttendeeMember]

    @field_serializer("rsvp_date")
    def _ser_datetime(self, dt: datetime) -> str:
        return _iso_utc(dt)


class AttendeeEvent(BaseModel):
    id: str
    title: str


class AttendeeList(BaseModel):
    event: AttendeeEvent
    attendees: list[AttendeeRead]
    total_attendees: int
    total_members: int
    total_guests: int


class SuccessResponse(BaseModel):
    success: bool = True


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_request(model: type[ModelT], payload: Any, message: str) -> ModelT:
    """Validate a raw request body, raising InvalidInputError with field-level details."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(message, exc.errors(include_url=False, include_context=False)) from exc
