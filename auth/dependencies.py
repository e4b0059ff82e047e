"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token transports are checked in priority order:
  1. "session_token" cookie -- set by POST /auth/login for browser clients.
  2. Authorization: Bearer <token> header -- API clients and scripts.

Both converge on the same opaque session token, validated against the
sessions table by the SessionManager stored on app.state.sessions.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.

Identity is ALWAYS derived from the session. Handlers must never trust a
user id supplied in the request body or path for the caller's own identity.

Layer rule: no imports from api/ or festival/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.sessions import SessionManager
from auth.tokens import SESSION_COOKIE
from core.errors import AuthError


def get_session_token(request: Request) -> str | None:
    """Return the raw session token from the cookie or Bearer header, if any."""
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def auth_http_error(exc: AuthError) -> HTTPException:
    """Translate a hard auth failure into the structured HTTP error envelope."""
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": str(exc)},
    )


def try_get_current_user(request: Request) -> User | None:
    """Resolve the caller from their session. Never raises."""
    sessions: SessionManager = request.app.state.sessions
    user_id = sessions.validate(get_session_token(request))
    if user_id is None:
        return None
    return sessions.store.get_by_id(user_id)


def get_current_user(request: Request) -> User:
    """Require a valid session. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.put("/rankings/{artist_id}")
        def route(user: User = Depends(get_current_user)): ...
    """
    sessions: SessionManager = request.app.state.sessions
    try:
        return sessions.require_user(get_session_token(request))
    except AuthError as exc:
        raise auth_http_error(exc) from exc


def require_admin(request: Request) -> User:
    """Require the admin flag. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin.

    Use as a FastAPI dependency:
        @router.post("/artists")
        def route(admin: User = Depends(require_admin)): ...
    """
    sessions: SessionManager = request.app.state.sessions
    try:
        return sessions.require_admin(get_session_token(request))
    except AuthError as exc:
        raise auth_http_error(exc) from exc
