"""
api/routes/v1/users.py -- Registration, profiles and admin user management.

Routes:
  POST   /api/v1/users/register                -- self-registration (public, rate-limited)
  GET    /api/v1/users/check-username          -- availability check (public)
  GET    /api/v1/users/me                      -- caller's profile, null without a session
  PATCH  /api/v1/users/me/profile              -- partial profile edit (session)
  POST   /api/v1/users/me/onboarding           -- finish onboarding (session)
  POST   /api/v1/users/me/password             -- change own password (session)
  PUT    /api/v1/users/me/avatar               -- pick a catalog image (session)
  DELETE /api/v1/users/me/avatar               -- fall back to color avatar (session)
  GET    /api/v1/users/by-username/{username}  -- public profile lookup
  GET    /api/v1/users/{id}                    -- public profile lookup
  GET    /api/v1/users                         -- list users (admin)
  POST   /api/v1/users                         -- create user (admin)
  PATCH  /api/v1/users/{id}/color              -- set a user's color (admin)
  PUT    /api/v1/users/{id}/avatar             -- set a user's image (admin)
  POST   /api/v1/users/{id}/password-reset     -- reset password (admin)
  DELETE /api/v1/users/{id}                    -- delete user + rankings + sessions (admin)

Every /me route resolves the caller from the session. No route accepts a
caller id from the body. Validation and not-found outcomes are soft
({"success": false, "error"}, HTTP 200); auth failures are 401/403.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.limiter import limiter, register_limit
from api.models import (
    ActionResult,
    AvatarSelect,
    ColorUpdate,
    OnboardingRequest,
    PasswordChange,
    PasswordReset,
    ProfilePatch,
    ProfileResult,
    RegisterRequest,
    RegisterResponse,
    UserCreate,
    UserCreateResponse,
    UserProfile,
    UsernameAvailability,
)
from auth import accounts
from auth.dependencies import get_current_user, require_admin, try_get_current_user
from auth.models import ProfileUpdate, User
from auth.store import UserStore
from core.errors import AvatarNotFound, NotFound, ValidationError
from festival.cascade import delete_user_cascade
from festival.store import FestivalStore

logger = logging.getLogger("rooranking.api")

# Auth policy:
# - POST /users/register, GET /users/check-username:       public
# - GET  /users/by-username/{username}, GET /users/{id}:     public (profile projection only)
# - /users/me*:                                              requires session (get_current_user)
# - GET/POST /users, /users/{id}/*, DELETE /users/{id}:     requires admin (require_admin)
router = APIRouter()


def _check_catalog_image(festival: FestivalStore, storage_id: str) -> None:
    if festival.get_avatar_by_storage_id(storage_id) is None:
        raise AvatarNotFound()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(register_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/users/register", response_model=RegisterResponse)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a non-admin account. Onboarding answers may be sent up front."""
    store: UserStore = request.app.state.user_store
    festival: FestivalStore = request.app.state.festival
    try:
        if body.avatar_image_id:
            _check_catalog_image(festival, body.avatar_image_id)
        user = accounts.register(
            store,
            body.username,
            body.password,
            avatar_color=body.avatar_color,
            avatar_image_id=body.avatar_image_id,
            years_attended=body.years_attended,
            questionnaire=body.questionnaire.to_domain() if body.questionnaire else None,
        )
    except (ValidationError, NotFound) as exc:
        return RegisterResponse(success=False, error=str(exc))
    return RegisterResponse(success=True, user=UserProfile.from_user(user))


@router.get("/users/check-username", response_model=UsernameAvailability)
def check_username(request: Request, username: str = Query(max_length=50)) -> UsernameAvailability:
    """Report whether a username is free. Blank names are never available."""
    if not username.strip():
        return UsernameAvailability(available=False)
    store: UserStore = request.app.state.user_store
    return UsernameAvailability(available=accounts.check_username(store, username))


@router.get("/users/by-username/{username}", response_model=Optional[UserProfile])
def get_user_by_username(request: Request, username: str) -> Optional[UserProfile]:
    store: UserStore = request.app.state.user_store
    user = store.get_by_username(username)
    return UserProfile.from_user(user) if user is not None else None


# ---------------------------------------------------------------------------
# Session-scoped endpoints (the caller's own account)
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=Optional[UserProfile])
def me(current_user: Optional[User] = Depends(try_get_current_user)) -> Optional[UserProfile]:
    """Return the profile of the session's owner, or null when there is no live session."""
    if current_user is None:
        return None
    return UserProfile.from_user(current_user)


@router.patch("/users/me/profile", response_model=ProfileResult)
def update_profile(
    request: Request,
    body: ProfilePatch,
    current_user: User = Depends(get_current_user),
) -> ProfileResult:
    """Edit color, attended years and questionnaire. Omitted fields are kept."""
    store: UserStore = request.app.state.user_store
    update = ProfileUpdate(
        avatar_color=body.avatar_color,
        years_attended=body.years_attended,
        questionnaire=body.questionnaire.to_domain() if body.questionnaire else None,
        fields_set=set(body.model_fields_set),
    )
    try:
        user = accounts.update_profile(store, current_user, update)
    except NotFound as exc:
        return ProfileResult(success=False, error=str(exc))
    return ProfileResult(success=True, user=UserProfile.from_user(user))


@router.post("/users/me/onboarding", response_model=ProfileResult)
def complete_onboarding(
    request: Request,
    body: OnboardingRequest,
    current_user: User = Depends(get_current_user),
) -> ProfileResult:
    store: UserStore = request.app.state.user_store
    try:
        user = accounts.complete_onboarding(
            store,
            current_user,
            avatar_color=body.avatar_color,
            years_attended=body.years_attended,
            questionnaire=body.questionnaire.to_domain() if body.questionnaire else None,
        )
    except NotFound as exc:
        return ProfileResult(success=False, error=str(exc))
    return ProfileResult(success=True, user=UserProfile.from_user(user))


@router.post("/users/me/password", response_model=ActionResult)
def change_password(
    request: Request,
    body: PasswordChange,
    current_user: User = Depends(get_current_user),
) -> ActionResult:
    """Change the caller's password. The current password must be re-entered.

    Existing sessions stay valid.
    """
    store: UserStore = request.app.state.user_store
    try:
        accounts.change_password(store, current_user, body.current_password, body.new_password)
    except ValidationError as exc:
        return ActionResult(success=False, error=str(exc))
    return ActionResult(success=True)


@router.put("/users/me/avatar", response_model=ActionResult)
def set_my_avatar(
    request: Request,
    body: AvatarSelect,
    current_user: User = Depends(get_current_user),
) -> ActionResult:
    """Use a catalog image as the caller's avatar."""
    store: UserStore = request.app.state.user_store
    festival: FestivalStore = request.app.state.festival
    try:
        _check_catalog_image(festival, body.storage_id)
        accounts.set_avatar_image(store, current_user.id, body.storage_id)
    except NotFound as exc:
        return ActionResult(success=False, error=str(exc))
    return ActionResult(success=True)


@router.delete("/users/me/avatar", response_model=ActionResult)
def clear_my_avatar(request: Request, current_user: User = Depends(get_current_user)) -> ActionResult:
    """Drop the caller's image; the color avatar shows again."""
    store: UserStore = request.app.state.user_store
    try:
        accounts.set_avatar_image(store, current_user.id, None)
    except NotFound as exc:
        return ActionResult(success=False, error=str(exc))
    return ActionResult(success=True)


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserProfile])
def list_users(request: Request, admin: User = Depends(require_admin)) -> list[UserProfile]:
    store: UserStore = request.app.state.user_store
    return [UserProfile.from_user(u) for u in store.list_users()]


@router.post("/users", response_model=UserCreateResponse)
def create_user(request: Request, body: UserCreate, admin: User = Depends(require_admin)) -> UserCreateResponse:
    """Create an account on someone's behalf. They finish onboarding on first login."""
    store: UserStore = request.app.state.user_store
    try:
        user = accounts.create_user(store, body.username, body.password, avatar_color=body.avatar_color)
    except ValidationError as exc:
        return UserCreateResponse(success=False, error=str(exc))
    logger.info("Admin %s created user %s (%s)", admin.id, user.id, user.username)
    return UserCreateResponse(success=True, user_id=user.id)


@router.patch("/users/{user_id}/color", response_model=ActionResult)
def set_user_color(
    request: Request,
    user_id: int,
    body: ColorUpdate,
    admin: User = Depends(require_admin),
) -> ActionResult:
    store: UserStore = request.app.state.user_store
    try:
        accounts.set_avatar_color(store, user_id, body.avatar_color)
    except NotFound as exc:
        return ActionResult(success=False, error=str(exc))
    return ActionResult(success=True)


@router.put("/users/{user_id}/avatar", response_model=ActionResult)
def set_user_avatar(
    request: Request,
    user_id: int,
    body: AvatarSelect,
    admin: User = Depends(require_admin),
) -> ActionResult:
    store: UserStore = request.app.state.user_store
    festival: FestivalStore = request.app.state.festival
    try:
        _check_catalog_image(festival, body.storage_id)
        accounts.set_avatar_image(store, user_id, body.storage_id)
    except NotFound as exc:
        return ActionResult(success=False, error=str(exc))
    return ActionResult(success=True)


@router.post("/users/{user_id}/password-reset", response_model=ActionResult)
def reset_password(
    request: Request,
    user_id: int,
    body: PasswordReset,
    admin: User = Depends(require_admin),
) -> ActionResult:
    """Set a new password without the current one."""
    store: UserStore = request.app.state.user_store
    try:
        accounts.reset_password(store, admin, user_id, body.new_password)
    except (ValidationError, NotFound) as exc:
        return ActionResult(success=False, error=str(exc))
    return ActionResult(success=True)


@router.delete("/users/{user_id}", response_model=ActionResult)
def delete_user(request: Request, user_id: int, admin: User = Depends(require_admin)) -> ActionResult:
    """Delete a user together with their rankings and sessions.

    [M4] An admin cannot delete their own account -- that would lock the
    last admin out just as easily as anyone else.
    """
    if user_id == admin.id:
        return ActionResult(success=False, error="You cannot delete your own account")
    store: UserStore = request.app.state.user_store
    festival: FestivalStore = request.app.state.festival
    try:
        removed = delete_user_cascade(store, festival, user_id)
    except NotFound as exc:
        return ActionResult(success=False, error=str(exc))
    logger.info("Admin %s deleted user %s (%d rankings)", admin.id, user_id, removed)
    return ActionResult(success=True)


# Registered last so the literal /users/me and /users/check-username paths
# win over the int-typed catch-all.
@router.get("/users/{user_id}", response_model=Optional[UserProfile])
def get_user(request: Request, user_id: int) -> Optional[UserProfile]:
    store: UserStore = request.app.state.user_store
    user = store.get_by_id(user_id)
    return UserProfile.from_user(user) if user is not None else None
