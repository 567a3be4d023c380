import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_optional_user_id, get_session
from ..domain.errors import DomainError
from ..domain.services import available_spots
from ..infrastructure.repositories import (
    SqlAlchemyEventRepository,
    SqlAlchemyMemberRepository,
    SqlAlchemyRsvpRepository,
    SqlAlchemyVolunteerRepository,
)
from ..models import EventType, EventVisibility
from ..schemas import (
    AttendeeList,
    EventDetails,
    EventListResponse,
    EventRead,
    EventWithCounts,
    RsvpRead,
    SlotRead,
    SuccessResponse,
)
from ..usecases import events as event_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import to_utc_naive
from .errors import audit_failure, storage_failure, to_http_exception

router = APIRouter(prefix="/events", tags=["events"])

logger = logging.getLogger(__name__)


def _with_counts(item: Dict[str, Any]) -> Dict[str, Any]:
    user_rsvp = item["user_rsvp"]
    return {
        **EventRead.fields_from_db(item["event"]),
        "rsvp_count": item["rsvp_count"],
        "attending_count": item["attending_count"],
        "available_spots": item["available_spots"],
        "user_rsvp": RsvpRead.from_db(rsvp=user_rsvp) if user_rsvp is not None else None,
    }


@router.get("", response_model=EventListResponse)
async def list_events(
    type: Optional[EventType] = Query(default=None),
    visibility: Optional[EventVisibility] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None, description="Earliest start time (ISO 8601 with offset)"),
    end_date: Optional[datetime] = Query(default=None, description="Latest start time (ISO 8601 with offset)"),
    search: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> EventListResponse:
    if (start_date is not None and start_date.tzinfo is None) or (end_date is not None and end_date.tzinfo is None):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date/end_date must have timezone")
    try:
        items, total = await event_usecase.list_events(
            SqlAlchemyMemberRepository(session),
            SqlAlchemyEventRepository(session),
            SqlAlchemyRsvpRepository(session),
            user_id=user_id,
            type=type,
            visibility=visibility,
            start_date=to_utc_naive(start_date) if start_date else None,
            end_date=to_utc_naive(end_date) if end_date else None,
            search=search,
            limit=limit,
            offset=offset,
        )
    except SQLAlchemyError as exc:
        logger.exception("failed to fetch events")
        raise storage_failure("Failed to fetch events") from exc
    return EventListResponse(events=[EventWithCounts(**_with_counts(item)) for item in items], total=total)


@router.post("", response_model=EventDetails, status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: Any = Body(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> EventDetails:
    try:
        async with session.begin():
            event, slots = await event_usecase.create_event(
                SqlAlchemyMemberRepository(session),
                SqlAlchemyEventRepository(session),
                SqlAlchemyVolunteerRepository(session),
                user_id=user_id,
                payload=payload,
            )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to create event")
        raise storage_failure("Failed to create event") from exc

    try:
        emit_audit_log(
            action="event.created",
            user_id=user_id,
            event_id=event.id,
            extra={"slot_ids": [slot.id for slot in slots]} if slots else None,
        )
    except RuntimeError as exc:
        raise audit_failure() from exc

    return EventDetails(
        **EventRead.fields_from_db(event),
        available_spots=available_spots(event.capacity, 0),
        volunteer_slots=[SlotRead.from_db(slot=slot) for slot in slots],
        can_edit=True,
        can_view_attendees=True,
    )


@router.get("/{event_id}", response_model=EventDetails)
async def get_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> EventDetails:
    try:
        item = await event_usecase.get_event_details(
            SqlAlchemyMemberRepository(session),
            SqlAlchemyEventRepository(session),
            SqlAlchemyRsvpRepository(session),
            SqlAlchemyVolunteerRepository(session),
            event_id=event_id,
            user_id=user_id,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to fetch event %s", event_id)
        raise storage_failure("Failed to fetch event") from exc
    return EventDetails(
        **_with_counts(item),
        volunteer_slots=[SlotRead.from_db(slot=slot, signups=signups) for slot, signups in item["volunteer_slots"]],
        can_edit=item["can_edit"],
        can_view_attendees=item["can_view_attendees"],
    )


@router.put("/{event_id}", response_model=EventRead)
async def update_event(
    event_id: str,
    payload: Any = Body(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> EventRead:
    try:
        async with session.begin():
            event = await event_usecase.update_event(
                SqlAlchemyMemberRepository(session),
                SqlAlchemyEventRepository(session),
                event_id=event_id,
                user_id=user_id,
                payload=payload,
            )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to update event %s", event_id)
        raise storage_failure("Failed to update event") from exc

    try:
        emit_audit_log(action="event.updated", user_id=user_id, event_id=event.id)
    except RuntimeError as exc:
        raise audit_failure() from exc
    return EventRead.from_db(event=event)


@router.delete("/{event_id}", response_model=SuccessResponse)
async def delete_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> SuccessResponse:
    try:
        async with session.begin():
            await event_usecase.delete_event(
                SqlAlchemyMemberRepository(session),
                SqlAlchemyEventRepository(session),
                event_id=event_id,
                user_id=user_id,
            )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to delete event %s", event_id)
        raise storage_failure("Failed to delete event") from exc

    try:
        emit_audit_log(action="event.deleted", user_id=user_id, event_id=event_id)
    except RuntimeError as exc:
        raise audit_failure() from exc
    return SuccessResponse()


@router.get("/{event_id}/attendees", response_model=AttendeeList)
async def list_attendees(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> AttendeeList:
    try:
        result = await event_usecase.list_attendees(
            SqlAlchemyMemberRepository(session),
            SqlAlchemyEventRepository(session),
            SqlAlchemyRsvpRepository(session),
            event_id=event_id,
            user_id=user_id,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to fetch attendees for event %s", event_id)
        raise storage_failure("Failed to fetch attendees") from exc
    return AttendeeList.model_validate(result)
