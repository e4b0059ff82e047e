"""
api/routes/v1/settings.py -- Festival-wide settings.

Routes:
  GET /api/v1/settings/active-year  -- the year shown by default (public)
  PUT /api/v1/settings/active-year  -- change it (admin)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import ActionResult, ActiveYearResponse, ActiveYearSet
from auth.dependencies import require_admin
from auth.models import User
from festival.store import FestivalStore

logger = logging.getLogger("rooranking.api")

router = APIRouter()


@router.get("/settings/active-year", response_model=ActiveYearResponse)
def get_active_year(request: Request) -> ActiveYearResponse:
    festival: FestivalStore = request.app.state.festival
    return ActiveYearResponse(year=festival.get_active_year())


@router.put("/settings/active-year", response_model=ActionResult)
def set_active_year(request: Request, body: ActiveYearSet, admin: User = Depends(require_admin)) -> ActionResult:
    festival: FestivalStore = request.app.state.festival
    festival.set_active_year(body.year)
    logger.info("Admin %s set the active year to %d", admin.id, body.year)
    return ActionResult(success=True)
