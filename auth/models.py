"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in festival/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or festival/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AvatarKind(str, Enum):
    color = "color"
    image = "image"


@dataclass(frozen=True)
class Avatar:
    """What a user's avatar renders as: a hex color OR an uploaded image.

    value is "#rrggbb" for color avatars and a storage id for image avatars.
    """

    kind: AvatarKind
    value: str


@dataclass
class Questionnaire:
    """Optional "get to know you" answers collected during onboarding."""

    favorite_year: str | None = None
    memorable_set: str | None = None
    worst_set: str | None = None
    favorite_vendor: str | None = None
    camp_essential: str | None = None


@dataclass
class User:
    """A Roo Ranking member.

    hashed_password is a bcrypt hash; it never leaves the auth layer.
    avatar_color is always set (it is the fallback when the image is cleared);
    avatar_image_id is the storage id of a picked/uploaded image, if any.

    onboarding_complete is False for admin-created accounts until the user
    walks through onboarding; self-registered users are complete on creation.
    """

    username: str
    hashed_password: str
    avatar_color: str = "#6366f1"
    is_admin: bool = False
    id: int | None = None
    avatar_image_id: str | None = None
    created_at: str | None = None
    years_attended: list[int] | None = None
    questionnaire: Questionnaire | None = None
    onboarding_complete: bool = False
    last_login: str | None = None

    @property
    def avatar(self) -> Avatar:
        if self.avatar_image_id:
            return Avatar(AvatarKind.image, self.avatar_image_id)
        return Avatar(AvatarKind.color, self.avatar_color)


@dataclass
class Session:
    """A bearer session issued at login.

    token is 64 URL-safe characters from secrets.token_urlsafe(48).
    A session is inert once now >= expires_at; the row is only removed by
    logout, by the owning user's deletion, or by the periodic purge.
    """

    user_id: int
    token: str
    expires_at: str  # ISO 8601 UTC
    id: int | None = None
    created_at: str | None = None


@dataclass
class ProfileUpdate:
    """Partial profile patch. Only fields named in `fields_set` are written."""

    avatar_color: str | None = None
    years_attended: list[int] | None = None
    questionnaire: Questionnaire | None = None
    fields_set: set[str] = field(default_factory=set)
