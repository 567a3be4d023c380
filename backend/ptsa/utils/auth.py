from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import jwt
from jwt import InvalidTokenError


def create_access_token(
    *,
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
    issuer: Optional[str] = None,
) -> str:
    """Mint a session token for `user_id`. Used by tests and local tooling; production tokens come from the IdP."""
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": user_id,
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=30)),
    }
    if issuer:
        claims["iss"] = issuer
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
    issuer: Optional[str] = None,
) -> str:
    """Return the identity provider user id carried in `sub`. Raises ValueError for any unusable token."""
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=list(algorithms),
            issuer=issuer,
            options={"require": ["exp", "sub"]},
        )
    except InvalidTokenError as exc:
        raise ValueError("invalid token") from exc

    user_id = claims["sub"]
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValueError("token sub must be a non-empty string")
    return user_id
