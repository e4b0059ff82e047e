"""
auth/accounts.py -- Account operations on top of UserStore.

Password policy, registration, profile edits and admin user management.
Every function either returns a value or raises a core.errors.RooError
subclass; routes decide whether that error is soft (validation, not found)
or hard (auth).

Authorization is NOT checked here. Callers pass in the already-resolved
acting User (from SessionManager.require_user / require_admin), never a
client-supplied id for the caller's own identity.

Layer rule: no imports from api/ or festival/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import ProfileUpdate, Questionnaire, User
from auth.store import UserStore
from auth.tokens import hash_password, verify_password
from core.config import get_settings
from core.errors import InvalidCurrentPassword, InvalidUsername, PasswordTooShort, UserNotFound, UsernameTaken

logger = logging.getLogger("rooranking.auth")

DEFAULT_AVATAR_COLOR = "#6366f1"


def _check_password(password: str) -> None:
    minimum = get_settings().min_password_length
    if len(password) < minimum:
        raise PasswordTooShort(f"Password must be at least {minimum} characters")


def _insert_user(store: UserStore, user: User) -> User:
    try:
        user_id = store.create_user(user)
    except IntegrityError as exc:
        # Lost the unique-index race to a concurrent registration.
        raise UsernameTaken() from exc
    created = store.get_by_id(user_id)
    if created is None:
        raise UserNotFound("User not found after write")
    return created


def check_username(store: UserStore, username: str) -> bool:
    """Return True if `username` is free to register."""
    return store.get_by_username(username.strip()) is None


def register(
    store: UserStore,
    username: str,
    password: str,
    avatar_color: str = DEFAULT_AVATAR_COLOR,
    avatar_image_id: str | None = None,
    years_attended: list[int] | None = None,
    questionnaire: Questionnaire | None = None,
) -> User:
    """Create a self-registered (non-admin) account with onboarding done.

    Order of checks: blank username, taken username, short password. Nothing
    is written unless all three pass.
    """
    username = username.strip()
    if not username:
        raise InvalidUsername()
    if store.get_by_username(username) is not None:
        raise UsernameTaken()
    _check_password(password)

    user = _insert_user(
        store,
        User(
            username=username,
            hashed_password=hash_password(password),
            avatar_color=avatar_color,
            avatar_image_id=avatar_image_id,
            years_attended=years_attended,
            questionnaire=questionnaire,
            onboarding_complete=True,
        ),
    )
    logger.info("Registered user %s (%s)", user.id, user.username)
    return user


def create_user(store: UserStore, username: str, password: str, avatar_color: str = DEFAULT_AVATAR_COLOR) -> User:
    """Admin-created account. The user finishes onboarding on first login."""
    username = username.strip()
    if not username:
        raise InvalidUsername()
    if store.get_by_username(username) is not None:
        raise UsernameTaken()
    _check_password(password)

    return _insert_user(
        store,
        User(
            username=username,
            hashed_password=hash_password(password),
            avatar_color=avatar_color,
            onboarding_complete=False,
        ),
    )


def create_admin(store: UserStore, username: str, password: str, avatar_color: str = "#f59e0b") -> tuple[User, bool]:
    """Create the admin account if it is missing. Returns (user, created).

    Idempotent: an existing user with that name is returned unchanged.
    """
    existing = store.get_by_username(username)
    if existing is not None:
        return existing, False
    _check_password(password)
    user = _insert_user(
        store,
        User(
            username=username,
            hashed_password=hash_password(password),
            avatar_color=avatar_color,
            is_admin=True,
            onboarding_complete=True,
        ),
    )
    logger.info("Created admin user %s (%s)", user.id, user.username)
    return user, True


def change_password(store: UserStore, user: User, current_password: str, new_password: str) -> None:
    """Replace the caller's password after re-verifying the current one."""
    if not verify_password(current_password, user.hashed_password):
        raise InvalidCurrentPassword()
    _check_password(new_password)
    store.update_user(user.id, hashed_password=hash_password(new_password))
    logger.info("User %s changed their password", user.id)


def reset_password(store: UserStore, admin: User, target_user_id: int, new_password: str) -> None:
    """Admin password reset. Skips the current-password check by design of the role."""
    _check_password(new_password)
    if not store.update_user(target_user_id, hashed_password=hash_password(new_password)):
        raise UserNotFound()
    logger.warning("Admin %s reset the password of user %s", admin.id, target_user_id)


def update_profile(store: UserStore, user: User, update: ProfileUpdate) -> User:
    """Apply a partial profile update. Fields not in update.fields_set are left alone."""
    fields: dict = {}
    if "avatar_color" in update.fields_set and update.avatar_color:
        fields["avatar_color"] = update.avatar_color
    if "years_attended" in update.fields_set:
        fields["years_attended"] = update.years_attended
    if "questionnaire" in update.fields_set:
        fields["questionnaire"] = update.questionnaire
    if not store.update_user(user.id, **fields):
        raise UserNotFound()
    return store.get_by_id(user.id)


def complete_onboarding(
    store: UserStore,
    user: User,
    avatar_color: str,
    years_attended: list[int] | None = None,
    questionnaire: Questionnaire | None = None,
) -> User:
    if not store.update_user(
        user.id,
        avatar_color=avatar_color,
        years_attended=years_attended,
        questionnaire=questionnaire,
        onboarding_complete=True,
    ):
        raise UserNotFound()
    return store.get_by_id(user.id)


def set_avatar_image(store: UserStore, user_id: int, storage_id: str | None) -> None:
    """Point a user's avatar at an uploaded image, or back to their color (None)."""
    if not store.update_user(user_id, avatar_image_id=storage_id):
        raise UserNotFound()


def set_avatar_color(store: UserStore, user_id: int, avatar_color: str) -> None:
    if not store.update_user(user_id, avatar_color=avatar_color):
        raise UserNotFound()
