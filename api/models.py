"""
API request and response models for Roo Ranking REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
festival/models.py, which own the internal domain representation. Route
handlers map between the two.

Soft outcomes (validation problems, missing targets) travel as
{"success": false, "error": "..."} with HTTP 200 -- see ActionResult.
Hard auth failures use the ErrorResponse envelope with 401/403.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Questionnaire, User
from festival.models import AggregateRow, Group
from festival.uploads import public_url

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"

# bcrypt only looks at the first 72 bytes of a password.
_MAX_PASSWORD = 72


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class GroupStatusEnum(str, Enum):
    current = "current"
    next = "next"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ActionResult(BaseModel):
    """Outcome of a mutation. Callers must check `success`."""

    model_config = ConfigDict(frozen=True)

    success: bool
    error: Optional[str] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class QuestionnaireModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    favorite_year: Optional[str] = Field(default=None, max_length=200)
    memorable_set: Optional[str] = Field(default=None, max_length=500)
    worst_set: Optional[str] = Field(default=None, max_length=500)
    favorite_vendor: Optional[str] = Field(default=None, max_length=200)
    camp_essential: Optional[str] = Field(default=None, max_length=200)

    def to_domain(self) -> Questionnaire:
        return Questionnaire(**self.model_dump())


class AvatarModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str  # "color" | "image"
    value: str
    url: Optional[str] = None


class UserProfile(BaseModel):
    """Public projection of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    is_admin: bool
    avatar_color: str
    avatar_image_id: Optional[str] = None
    avatar: AvatarModel
    created_at: str
    years_attended: Optional[list[int]] = None
    questionnaire: Optional[QuestionnaireModel] = None
    onboarding_complete: bool

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        """Factory Method -- the mapping lives beside the output model."""
        avatar = user.avatar
        return cls(
            id=user.id,
            username=user.username,
            is_admin=user.is_admin,
            avatar_color=user.avatar_color,
            avatar_image_id=user.avatar_image_id,
            avatar=AvatarModel(
                kind=avatar.kind.value,
                value=avatar.value,
                url=public_url(avatar.value) if user.avatar_image_id else None,
            ),
            created_at=user.created_at or "",
            years_attended=user.years_attended,
            questionnaire=(
                QuestionnaireModel(**user.questionnaire.__dict__) if user.questionnaire is not None else None
            ),
            onboarding_complete=user.onboarding_complete,
        )


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users/register.

    Password length is checked by the account layer, not here, so a short
    password comes back as a soft {"success": false} instead of a 422.
    """

    username: str = Field(max_length=50)
    password: str = Field(max_length=_MAX_PASSWORD)
    avatar_color: str = Field(default="#6366f1", pattern=HEX_COLOR_PATTERN)
    avatar_image_id: Optional[str] = Field(default=None, max_length=64)
    years_attended: Optional[list[int]] = None
    questionnaire: Optional[QuestionnaireModel] = None

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        # Only the username is trimmed; passwords keep their spaces.
        return value.strip()


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    user: Optional[UserProfile] = None
    error: Optional[str] = None


class UsernameAvailability(BaseModel):
    model_config = ConfigDict(frozen=True)

    available: bool


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=_MAX_PASSWORD)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    token: Optional[str] = None
    user: Optional[UserProfile] = None
    error: Optional[str] = None


class ProfilePatch(BaseModel):
    """PATCH /users/me/profile. Omitted fields are untouched; explicit null clears."""

    avatar_color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    years_attended: Optional[list[int]] = None
    questionnaire: Optional[QuestionnaireModel] = None


class OnboardingRequest(BaseModel):
    avatar_color: str = Field(pattern=HEX_COLOR_PATTERN)
    years_attended: Optional[list[int]] = None
    questionnaire: Optional[QuestionnaireModel] = None


class ProfileResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    user: Optional[UserProfile] = None
    error: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str = Field(max_length=_MAX_PASSWORD)
    new_password: str = Field(max_length=_MAX_PASSWORD)


class PasswordReset(BaseModel):
    new_password: str = Field(max_length=_MAX_PASSWORD)


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin)."""

    username: str = Field(max_length=50)
    password: str = Field(max_length=_MAX_PASSWORD)
    avatar_color: str = Field(default="#6366f1", pattern=HEX_COLOR_PATTERN)

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        # Only the username is trimmed; passwords keep their spaces.
        return value.strip()


class UserCreateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    user_id: Optional[int] = None
    error: Optional[str] = None


class ColorUpdate(BaseModel):
    avatar_color: str = Field(pattern=HEX_COLOR_PATTERN)


class AvatarSelect(BaseModel):
    storage_id: str = Field(min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Artists
# ---------------------------------------------------------------------------


class AddArtistsRequest(BaseModel):
    """Request body for POST /api/v1/artists.

    Either `names` (already split) or `text` (newline-delimited paste) or
    both; text lines are appended after names.
    """

    year: int = Field(ge=1900, le=2100)
    names: list[str] = Field(default_factory=list, max_length=500)
    text: Optional[str] = Field(default=None, max_length=50_000)


class AddArtistsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    added: list[str]
    skipped: list[str]


class ArtistResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    year: int


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class GroupCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(max_length=255)
    year: int = Field(ge=1900, le=2100)
    artist_ids: list[int] = Field(default_factory=list)
    status: Optional[GroupStatusEnum] = None


class GroupPatch(BaseModel):
    """PATCH /groups/{id}. Only fields present in the body are written.

    {"status": null} clears the status; omitting "status" leaves it alone.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    artist_ids: Optional[list[int]] = None
    status: Optional[GroupStatusEnum] = None


class GroupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    year: int
    artist_ids: list[int]
    status: Optional[GroupStatusEnum]
    order: int

    @classmethod
    def from_group(cls, group: Group) -> "GroupResponse":
        return cls(
            id=group.id,
            name=group.name,
            year=group.year,
            artist_ids=group.artist_ids,
            status=GroupStatusEnum(group.status.value) if group.status is not None else None,
            order=group.order,
        )


class GroupResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    group: Optional[GroupResponse] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Rankings
# ---------------------------------------------------------------------------


class RankingSet(BaseModel):
    """PUT /rankings/{artist_id}. Range is checked by the store (soft error)."""

    score: int


class AggregateRankingRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    artist_id: int
    name: str
    avg_score: Optional[float]
    rating_count: int

    @classmethod
    def from_row(cls, row: AggregateRow) -> "AggregateRankingRow":
        return cls(
            artist_id=row.artist_id,
            name=row.name,
            avg_score=row.avg_score,
            rating_count=row.rating_count,
        )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class ActiveYearResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int


class ActiveYearSet(BaseModel):
    year: int = Field(ge=1900, le=2100)


# ---------------------------------------------------------------------------
# Avatar catalog
# ---------------------------------------------------------------------------


class UploadUrlResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    upload_url: str
    storage_id: str
    expires_at: int


class AvatarSave(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    storage_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)


class AvatarRename(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)


class AvatarResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    storage_id: str
    url: str
    created_at: str
