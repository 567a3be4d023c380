import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_optional_user_id, get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyEventRepository,
    SqlAlchemyMemberRepository,
    SqlAlchemyVolunteerRepository,
)
from ..schemas import SignupRead, SlotRead, SuccessResponse
from ..usecases import volunteers as volunteer_usecase
from ..utils.audit_log import emit_audit_log
from .errors import audit_failure, storage_failure, to_http_exception

router = APIRouter(prefix="/events", tags=["volunteers"])

logger = logging.getLogger(__name__)


@router.post("/{event_id}/volunteer", response_model=SignupRead, status_code=status.HTTP_200_OK)
async def upsert_signup(
    event_id: str,
    payload: Any = Body(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> SignupRead:
    member_repo = SqlAlchemyMemberRepository(session)
    event_repo = SqlAlchemyEventRepository(session)
    volunteer_repo = SqlAlchemyVolunteerRepository(session)
    try:
        async with session.begin():
            signup, slot, created = await volunteer_usecase.upsert_signup(
                member_repo,
                event_repo,
                volunteer_repo,
                event_id=event_id,
                user_id=user_id,
                payload=payload,
            )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to save volunteer signup for event %s", event_id)
        raise storage_failure("Failed to save volunteer signup") from exc

    try:
        emit_audit_log(
            action="volunteer.signed_up" if created else "volunteer.updated",
            user_id=user_id,
            event_id=slot.event_id,
            record_id=signup.id,
            slot_id=slot.id,
            quantity=signup.quantity,
        )
    except RuntimeError as exc:
        raise audit_failure() from exc

    return SignupRead.from_db(signup=signup)


@router.delete("/{event_id}/volunteer", response_model=SuccessResponse)
async def delete_signup(
    event_id: str,
    slot_id: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> SuccessResponse:
    volunteer_repo = SqlAlchemyVolunteerRepository(session)
    try:
        async with session.begin():
            removed = await volunteer_usecase.delete_signup(
                volunteer_repo,
                event_id=event_id,
                slot_id=slot_id,
                user_id=user_id,
            )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to delete volunteer signup for slot %s", slot_id)
        raise storage_failure("Failed to delete volunteer signup") from exc

    if removed:
        try:
            emit_audit_log(action="volunteer.cancelled", user_id=user_id, event_id=event_id, slot_id=slot_id)
        except RuntimeError as exc:
            raise audit_failure() from exc
    return SuccessResponse()


@router.get("/{event_id}/volunteer-slots", response_model=List[SlotRead])
async def list_slots(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> list[SlotRead]:
    try:
        rows = await volunteer_usecase.list_slots(
            SqlAlchemyMemberRepository(session),
            SqlAlchemyEventRepository(session),
            SqlAlchemyVolunteerRepository(session),
            event_id=event_id,
            user_id=user_id,
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to fetch volunteer slots for event %s", event_id)
        raise storage_failure("Failed to fetch volunteer slots") from exc
    return [SlotRead.from_db(slot=slot, signups=signups) for slot, signups in rows]


@router.post("/{event_id}/volunteer-slots", response_model=List[SlotRead], status_code=status.HTTP_201_CREATED)
async def add_slots(
    event_id: str,
    payload: Any = Body(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> list[SlotRead]:
    try:
        async with session.begin():
            slots = await volunteer_usecase.add_slots(
                SqlAlchemyMemberRepository(session),
                SqlAlchemyEventRepository(session),
                SqlAlchemyVolunteerRepository(session),
                event_id=event_id,
                user_id=user_id,
                payload=payload,
            )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to create volunteer slots for event %s", event_id)
        raise storage_failure("Failed to create volunteer slots") from exc

    try:
        emit_audit_log(
            action="volunteer_slots.created",
            user_id=user_id,
            event_id=event_id,
            extra={"slot_ids": [slot.id for slot in slots]},
        )
    except RuntimeError as exc:
        raise audit_failure() from exc
    return [SlotRead.from_db(slot=slot) for slot in slots]
