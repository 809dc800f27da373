"""Anonymous per-browser identity kept in a long-lived HttpOnly cookie."""
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import Request, Response

from .config import Settings, settings


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def set_identity_cookie(response: Response, user_id: str, s: Settings | None = None) -> None:
    s = s or settings
    max_age = s.session_max_age_days * 24 * 60 * 60
    response.set_cookie(
        key=s.session_cookie_name,
        value=user_id,
        max_age=max_age,
        expires=datetime.now(timezone.utc) + timedelta(seconds=max_age),
        httponly=True,
        secure=s.is_production,
        samesite="lax",
        path="/",
    )


def get_or_create_user_id(request: Request, response: Response, s: Settings | None = None) -> str:
    """
    Return the caller's id from the cookie, issuing a fresh one (and the cookie) on first visit.

    A fresh id is also left on ``request.state.new_user_id``: when the request
    ends in an error, the handler builds a new response and sets the cookie again.
    """
    s = s or settings
    user_id = request.cookies.get(s.session_cookie_name)
    if user_id and _is_uuid(user_id):
        return user_id
    user_id = str(uuid.uuid4())
    set_identity_cookie(response, user_id, s)
    request.state.new_user_id = user_id
    return user_id
