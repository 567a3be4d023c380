from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Optional

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Incoming ids end up in audit lines, so only short opaque tokens are trusted.
_ACCEPTED_ID = re.compile(r"[A-Za-z0-9._-]{1,128}")


def generate_request_id() -> str:
    return uuid.uuid4().hex


def resolve_request_id(incoming: str | None) -> str:
    """Reuse a well-formed client supplied id, otherwise mint a fresh one."""
    if incoming and _ACCEPTED_ID.fullmatch(incoming):
        return incoming
    return generate_request_id()


def set_request_id(request_id: str | None) -> None:
    """Store request id in context (None to clear)."""
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()
