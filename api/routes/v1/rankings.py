"""
api/routes/v1/rankings.py -- Personal scores and the crowd aggregate.

Routes:
  PUT    /api/v1/rankings/{artist_id}        -- set the caller's score (session)
  DELETE /api/v1/rankings/{artist_id}        -- clear the caller's score (session)
  GET    /api/v1/rankings/users/{user_id}    -- {artist_id: score} for ?year=
  GET    /api/v1/rankings/aggregate          -- average + count per artist for ?year=

Writes always act on the session owner. The user id in the read route only
selects whose public rankings to show.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import ActionResult, AggregateRankingRow, RankingSet
from auth.dependencies import get_current_user
from auth.models import User
from core.errors import NotFound, ValidationError
from festival.store import FestivalStore

# Auth policy:
# - PUT/DELETE /rankings/{artist_id}: requires session (get_current_user)
# - GET /rankings/users/{id}, GET /rankings/aggregate: public
router = APIRouter()


@router.put("/rankings/{artist_id}", response_model=ActionResult)
def set_ranking(
    request: Request,
    artist_id: int,
    body: RankingSet,
    current_user: User = Depends(get_current_user),
) -> ActionResult:
    """Score an artist 1-10. Re-scoring overwrites; there is one row per pair."""
    festival: FestivalStore = request.app.state.festival
    try:
        festival.set_ranking(current_user.id, artist_id, body.score)
    except (ValidationError, NotFound) as exc:
        return ActionResult(success=False, error=str(exc))
    return ActionResult(success=True)


@router.delete("/rankings/{artist_id}", response_model=ActionResult)
def clear_ranking(request: Request, artist_id: int, current_user: User = Depends(get_current_user)) -> ActionResult:
    """Remove the caller's score. Clearing an unscored artist still succeeds."""
    festival: FestivalStore = request.app.state.festival
    festival.clear_ranking(current_user.id, artist_id)
    return ActionResult(success=True)


@router.get("/rankings/users/{user_id}", response_model=dict[int, int])
def user_rankings(request: Request, user_id: int, year: Optional[int] = Query(default=None)) -> dict[int, int]:
    festival: FestivalStore = request.app.state.festival
    if year is None:
        year = festival.get_active_year()
    return festival.get_user_rankings_for_year(user_id, year)


@router.get("/rankings/aggregate", response_model=list[AggregateRankingRow])
def aggregate_rankings(request: Request, year: Optional[int] = Query(default=None)) -> list[AggregateRankingRow]:
    """Every artist of the year with their average score; unrated ones report null."""
    festival: FestivalStore = request.app.state.festival
    if year is None:
        year = festival.get_active_year()
    return [AggregateRankingRow.from_row(row) for row in festival.get_aggregate_rankings(year)]
