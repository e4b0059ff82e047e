"""
core/errors.py -- Domain error taxonomy for Roo Ranking.

Three families, each with a different propagation policy at the route layer:

  ValidationError -- user-correctable input (short password, score out of
      range, blank names). Routes catch these and answer HTTP 200 with
      {"success": false, "error": str(exc)} so the UI can show them inline.

  NotFound -- the target of a mutation does not exist. Same soft envelope
      as ValidationError.

  AuthError -- missing/invalid/expired session, bad credentials, or a
      non-admin calling an admin operation. These abort the request: the
      auth dependencies turn them into HTTP 401/403.

The message of each class is the user-facing text; callers may override it.

Layer rule: core/ is the kernel. No imports from api/, auth/, or festival/.
"""

from __future__ import annotations


class RooError(Exception):
    """Base class for every domain error raised by Roo Ranking."""

    message = "Something went wrong"
    code = "error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


# ---------------------------------------------------------------------------
# Soft: validation
# ---------------------------------------------------------------------------


class ValidationError(RooError):
    code = "validation_error"


class InvalidUsername(ValidationError):
    message = "Username is required"
    code = "invalid_username"


class UsernameTaken(ValidationError):
    message = "Username already exists"
    code = "username_taken"


class PasswordTooShort(ValidationError):
    message = "Password must be at least 6 characters"
    code = "password_too_short"


class InvalidCurrentPassword(ValidationError):
    message = "Current password is incorrect"
    code = "invalid_current_password"


class ScoreOutOfRange(ValidationError):
    message = "Score must be between 1 and 10"
    code = "score_out_of_range"


class InvalidGroupName(ValidationError):
    message = "Group name is required"
    code = "invalid_group_name"


# ---------------------------------------------------------------------------
# Soft: not found
# ---------------------------------------------------------------------------


class NotFound(RooError):
    message = "Not found"
    code = "not_found"


class UserNotFound(NotFound):
    message = "User not found"


class ArtistNotFound(NotFound):
    message = "Artist not found"


class GroupNotFound(NotFound):
    message = "Group not found"


class AvatarNotFound(NotFound):
    message = "Avatar not found"


# ---------------------------------------------------------------------------
# Hard: authentication / authorization
# ---------------------------------------------------------------------------


class AuthError(RooError):
    status_code = 401
    code = "unauthorized"


class InvalidCredentials(AuthError):
    message = "Invalid username or password"
    code = "bad_credentials"


class NotAuthenticated(AuthError):
    message = "Authentication required"
    code = "not_authenticated"


class AdminRequired(AuthError):
    status_code = 403
    message = "Admin access required"
    code = "admin_required"
