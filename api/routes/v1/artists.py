"""
api/routes/v1/artists.py -- Lineup management.

Routes:
  POST   /api/v1/artists          -- bulk add for a year (admin)
  GET    /api/v1/artists          -- lineup for ?year= (default: active year)
  GET    /api/v1/artists/years    -- years that have a lineup, newest first
  DELETE /api/v1/artists/{id}     -- delete with rankings + group memberships (admin)
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import ActionResult, AddArtistsRequest, AddArtistsResponse, ArtistResponse
from auth.dependencies import require_admin
from auth.models import User
from core.errors import ArtistNotFound
from festival.lineup import parse_lineup
from festival.store import FestivalStore

logger = logging.getLogger("rooranking.api")

# Auth policy:
# - GET    /artists, /artists/years: public
# - POST   /artists:                 requires admin (require_admin)
# - DELETE /artists/{id}:            requires admin (require_admin)
router = APIRouter()


@router.post("/artists", response_model=AddArtistsResponse)
def add_artists(request: Request, body: AddArtistsRequest, admin: User = Depends(require_admin)) -> AddArtistsResponse:
    """Add a batch of names to a year's lineup.

    Names already billed for that year are reported in `skipped`; nothing
    is ever overwritten.
    """
    festival: FestivalStore = request.app.state.festival
    names = list(body.names)
    if body.text:
        names.extend(parse_lineup(body.text))
    result = festival.add_artists(names, body.year)
    logger.info("Admin %s added %d artists to %d", admin.id, len(result.added), body.year)
    return AddArtistsResponse(added=result.added, skipped=result.skipped)


@router.get("/artists", response_model=list[ArtistResponse])
def list_artists(request: Request, year: Optional[int] = Query(default=None)) -> list[ArtistResponse]:
    festival: FestivalStore = request.app.state.festival
    if year is None:
        year = festival.get_active_year()
    return [ArtistResponse(id=a.id, name=a.name, year=a.year) for a in festival.get_artists_by_year(year)]


@router.get("/artists/years", response_model=list[int])
def list_years(request: Request) -> list[int]:
    festival: FestivalStore = request.app.state.festival
    return festival.get_years_with_artists()


@router.delete("/artists/{artist_id}", response_model=ActionResult)
def delete_artist(request: Request, artist_id: int, admin: User = Depends(require_admin)) -> ActionResult:
    festival: FestivalStore = request.app.state.festival
    if not festival.delete_artist(artist_id):
        return ActionResult(success=False, error=ArtistNotFound.message)
    logger.info("Admin %s deleted artist %s", admin.id, artist_id)
    return ActionResult(success=True)
