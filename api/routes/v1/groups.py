"""
api/routes/v1/groups.py -- Named artist groups (stages, nights, sets).

Routes:
  GET    /api/v1/groups?year=   -- groups for a year, in display order
  POST   /api/v1/groups         -- create (admin)
  PATCH  /api/v1/groups/{id}    -- partial update (admin)
  DELETE /api/v1/groups/{id}    -- delete (admin)

At most one group per year holds each status ("current", "next"). Giving a
group a status takes it from whichever group had it, atomically.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import ActionResult, GroupCreate, GroupPatch, GroupResponse, GroupResult
from auth.dependencies import require_admin
from auth.models import User
from core.errors import GroupNotFound, ValidationError
from festival.models import GroupStatus
from festival.store import FestivalStore

# Auth policy:
# - GET /groups:                    public
# - POST/PATCH/DELETE /groups*:     requires admin (require_admin)
router = APIRouter()


def _status(value) -> Optional[GroupStatus]:
    return GroupStatus(value.value) if value is not None else None


@router.get("/groups", response_model=list[GroupResponse])
def list_groups(request: Request, year: Optional[int] = Query(default=None)) -> list[GroupResponse]:
    festival: FestivalStore = request.app.state.festival
    if year is None:
        year = festival.get_active_year()
    return [GroupResponse.from_group(g) for g in festival.get_groups_by_year(year)]


@router.post("/groups", response_model=GroupResult)
def create_group(request: Request, body: GroupCreate, admin: User = Depends(require_admin)) -> GroupResult:
    festival: FestivalStore = request.app.state.festival
    try:
        group = festival.create_group(body.name, body.year, body.artist_ids, status=_status(body.status))
    except ValidationError as exc:
        return GroupResult(success=False, error=str(exc))
    return GroupResult(success=True, group=GroupResponse.from_group(group))


@router.patch("/groups/{group_id}", response_model=GroupResult)
def update_group(
    request: Request,
    group_id: int,
    body: GroupPatch,
    admin: User = Depends(require_admin),
) -> GroupResult:
    """Write only the fields present in the body. {"status": null} clears status."""
    festival: FestivalStore = request.app.state.festival
    fields: dict = {}
    for name in body.model_fields_set:
        value = getattr(body, name)
        if name == "status":
            fields["status"] = _status(value)
        elif value is not None:
            fields[name] = value
    try:
        group = festival.update_group(group_id, **fields)
    except ValidationError as exc:
        return GroupResult(success=False, error=str(exc))
    if group is None:
        return GroupResult(success=False, error=GroupNotFound.message)
    return GroupResult(success=True, group=GroupResponse.from_group(group))


@router.delete("/groups/{group_id}", response_model=ActionResult)
def delete_group(request: Request, group_id: int, admin: User = Depends(require_admin)) -> ActionResult:
    festival: FestivalStore = request.app.state.festival
    if not festival.delete_group(group_id):
        return ActionResult(success=False, error=GroupNotFound.message)
    return ActionResult(success=True)
