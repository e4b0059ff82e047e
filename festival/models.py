"""
festival/models.py -- Domain dataclasses for the Roo Ranking lineup data.

These are pure data containers with zero logic. All business rules (status
exclusivity, cascades, upserts, aggregation) live in festival/store.py.

Separation of concerns: these dataclasses are the festival domain's truth,
just as auth/models.py is the identity domain's truth.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class GroupStatus(str, Enum):
    """Which BALI group is on stage now ("current") or up next ("next").

    A group with no status stores NULL; at most one group per year holds
    each member of this enum.
    """

    current = "current"
    next = "next"


@dataclass
class Artist:
    """A festival act for one year. (name, year) is unique.

    id is None before the record is written to the database.
    """

    name: str
    year: int
    id: Optional[int] = None


@dataclass
class Group:
    """A named, ordered BALI grouping of artists within one year.

    artist_ids are weak references: deleting an artist prunes its id here
    instead of deleting the group. order is the insertion sequence within
    the year (0, 1, 2, ...).
    """

    name: str
    year: int
    artist_ids: list[int] = field(default_factory=list)
    status: Optional[GroupStatus] = None
    order: int = 0
    id: Optional[int] = None


@dataclass
class Ranking:
    """One user's 1-10 score for one artist. (user_id, artist_id) is unique."""

    user_id: int
    artist_id: int
    score: int
    updated_at: str = ""  # ISO 8601, set by store on write
    id: Optional[int] = None


@dataclass
class AggregateRow:
    """Group-wide result for one artist.

    avg_score is None when nobody rated the artist -- never 0, which would
    read as a real rating.
    """

    artist_id: int
    name: str
    avg_score: Optional[float]
    rating_count: int


@dataclass
class AddArtistsResult:
    """Outcome of a bulk add, partitioned in input order."""

    added: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class AvatarImage:
    """An admin-curated avatar image held by the external storage provider.

    storage_id identifies the file at the provider; the service only ever
    stores this id and a display name, never the bytes.
    """

    storage_id: str
    name: str
    created_at: str = ""
    id: Optional[int] = None
