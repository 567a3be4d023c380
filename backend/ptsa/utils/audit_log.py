from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "rsvp.created",
    "rsvp.updated",
    "rsvp.deleted",
    "volunteer.signed_up",
    "volunteer.updated",
    "volunteer.cancelled",
    "volunteer_slots.created",
    "event.created",
    "event.updated",
    "event.deleted",
]


def _build_audit_logger() -> logging.Logger:
    logger = logging.getLogger("audit")
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    # audit lines stay out of the application log
    logger.propagate = False
    return logger


_audit_logger = _build_audit_logger()


def _plain(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def build_audit_record(
    *,
    action: AuditAction,
    user_id: Optional[str],
    event_id: Optional[str],
    **fields: Any,
) -> dict[str, Any]:
    """Flat JSON-ready record; enum values are unwrapped and None fields dropped."""
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "request_id": get_request_id(),
        "user_id": user_id,
        "event_id": event_id,
    }
    extra = fields.pop("extra", None) or {}
    record.update({key: _plain(value) for key, value in fields.items()})
    record.update(extra)
    return {key: value for key, value in record.items() if value is not None}


def emit_audit_log(
    *,
    action: AuditAction,
    user_id: Optional[str],
    event_id: Optional[str],
    record_id: Optional[int | str] = None,
    slot_id: Optional[str] = None,
    status_from: Optional[Any] = None,
    status_to: Optional[Any] = None,
    quantity: Optional[int] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Write one audit line. Raises RuntimeError if it cannot be written.

    `quantity` is the guest count for RSVPs and the volunteer units for signups.
    """
    record = build_audit_record(
        action=action,
        user_id=user_id,
        event_id=event_id,
        record_id=record_id,
        slot_id=slot_id,
        status_from=status_from,
        status_to=status_to,
        quantity=quantity,
        message=message,
        extra=extra,
    )
    try:
        _audit_logger.info(json.dumps(record, ensure_ascii=True, default=str))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
