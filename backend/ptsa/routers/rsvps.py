import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_optional_user_id, get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyEventRepository,
    SqlAlchemyMemberRepository,
    SqlAlchemyRsvpRepository,
)
from ..schemas import RsvpRead, SuccessResponse
from ..usecases import rsvps as rsvp_usecase
from ..utils.audit_log import emit_audit_log
from .errors import audit_failure, storage_failure, to_http_exception

router = APIRouter(prefix="/events", tags=["rsvps"])

logger = logging.getLogger(__name__)


@router.post("/{event_id}/rsvp", response_model=RsvpRead, status_code=status.HTTP_200_OK)
async def upsert_rsvp(
    event_id: str,
    payload: Any = Body(default=None),
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> RsvpRead:
    member_repo = SqlAlchemyMemberRepository(session)
    event_repo = SqlAlchemyEventRepository(session)
    rsvp_repo = SqlAlchemyRsvpRepository(session)
    try:
        async with session.begin():
            rsvp, created, previous_status = await rsvp_usecase.upsert_rsvp(
                member_repo,
                event_repo,
                rsvp_repo,
                event_id=event_id,
                user_id=user_id,
                payload=payload,
            )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to save RSVP for event %s", event_id)
        raise storage_failure("Failed to save RSVP") from exc

    try:
        emit_audit_log(
            action="rsvp.created" if created else "rsvp.updated",
            user_id=user_id,
            event_id=rsvp.event_id,
            record_id=rsvp.id,
            status_from=previous_status,
            status_to=rsvp.status,
            quantity=rsvp.guest_count,
        )
    except RuntimeError as exc:
        raise audit_failure() from exc

    return RsvpRead.from_db(rsvp=rsvp)


@router.delete("/{event_id}/rsvp", response_model=SuccessResponse)
async def delete_rsvp(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> SuccessResponse:
    rsvp_repo = SqlAlchemyRsvpRepository(session)
    try:
        async with session.begin():
            removed = await rsvp_usecase.delete_rsvp(rsvp_repo, event_id=event_id, user_id=user_id)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("failed to delete RSVP for event %s", event_id)
        raise storage_failure("Failed to delete RSVP") from exc

    if removed:
        try:
            emit_audit_log(action="rsvp.deleted", user_id=user_id, event_id=event_id)
        except RuntimeError as exc:
            raise audit_failure() from exc
    return SuccessResponse()
