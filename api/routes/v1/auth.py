"""
api/routes/v1/auth.py -- Session login and logout.

Routes:
  POST /api/v1/auth/login   -- password login; opens a session, sets cookie
  POST /api/v1/auth/logout  -- revokes the caller's session; clears cookie

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] SessionManager.login() goes through authenticate_user(), which
       equalizes timing between unknown usernames and wrong passwords.
  [M5] Cache-Control: no-store on login responses (they carry the token).
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import ActionResult, LoginRequest, LoginResponse, UserProfile
from auth.dependencies import get_session_token
from auth.sessions import SessionManager
from auth.tokens import clear_session_cookie, set_session_cookie
from core.errors import InvalidCredentials

# Auth policy:
# - POST /api/v1/auth/login:  public -- the endpoint that creates sessions
# - POST /api/v1/auth/logout: public -- revoking an unknown token is a no-op
router = APIRouter()


@limiter.limit(login_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify credentials and open a session.

    Wrong username and wrong password produce the same 401
    "bad_credentials" so the response never reveals which names exist.
    """
    sessions: SessionManager = request.app.state.sessions
    try:
        token, user = sessions.login(body.username, body.password)
    except InvalidCredentials as exc:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": exc.code, "message": str(exc)}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(success=True, token=token, user=UserProfile.from_user(user)).model_dump(),
    )
    set_session_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=ActionResult)
def logout(request: Request) -> JSONResponse:
    """Revoke the presented session token, if any, and clear the cookie.

    Idempotent: logging out twice, or with an expired token, still succeeds.
    """
    sessions: SessionManager = request.app.state.sessions
    sessions.logout(get_session_token(request))
    resp = JSONResponse(content=ActionResult(success=True).model_dump())
    clear_session_cookie(resp)
    return resp
