"""
api/routes/v1/avatars.py -- Avatar image catalog.

Routes:
  POST   /api/v1/avatars/upload-url  -- mint a signed upload URL (admin)
  POST   /api/v1/avatars             -- add an uploaded image to the catalog (admin)
  GET    /api/v1/avatars             -- list the catalog (public)
  PATCH  /api/v1/avatars/{id}        -- rename (admin)
  DELETE /api/v1/avatars/{id}        -- remove (admin)

Image bytes never pass through this service; see festival/uploads.py for the
signed-URL flow. Deleting a catalog entry does not touch users who already
picked that image: their avatar_image_id keeps pointing at the stored file.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import ActionResult, AvatarRename, AvatarResponse, AvatarSave, UploadUrlResponse
from auth.dependencies import require_admin
from auth.models import User
from core.errors import AvatarNotFound
from festival.models import AvatarImage
from festival.store import FestivalStore
from festival.uploads import generate_upload_url, public_url

logger = logging.getLogger("rooranking.api")

# Auth policy:
# - GET /avatars:                 public -- onboarding shows the catalog before login
# - everything else:              requires admin (require_admin)
router = APIRouter()


def _to_response(avatar: AvatarImage) -> AvatarResponse:
    return AvatarResponse(
        id=avatar.id,
        name=avatar.name,
        storage_id=avatar.storage_id,
        url=public_url(avatar.storage_id),
        created_at=avatar.created_at or "",
    )


@router.post("/avatars/upload-url", response_model=UploadUrlResponse)
def create_upload_url(admin: User = Depends(require_admin)) -> UploadUrlResponse:
    ticket = generate_upload_url()
    return UploadUrlResponse(upload_url=ticket.upload_url, storage_id=ticket.storage_id, expires_at=ticket.expires_at)


@router.post("/avatars", response_model=ActionResult)
def save_avatar(request: Request, body: AvatarSave, admin: User = Depends(require_admin)) -> ActionResult:
    festival: FestivalStore = request.app.state.festival
    try:
        festival.create_avatar(AvatarImage(storage_id=body.storage_id, name=body.name))
    except IntegrityError:
        return ActionResult(success=False, error="Avatar already saved")
    logger.info("Admin %s saved avatar %s", admin.id, body.storage_id)
    return ActionResult(success=True)


@router.get("/avatars", response_model=list[AvatarResponse])
def list_avatars(request: Request) -> list[AvatarResponse]:
    festival: FestivalStore = request.app.state.festival
    return [_to_response(a) for a in festival.list_avatars()]


@router.patch("/avatars/{avatar_id}", response_model=ActionResult)
def rename_avatar(
    request: Request,
    avatar_id: int,
    body: AvatarRename,
    admin: User = Depends(require_admin),
) -> ActionResult:
    festival: FestivalStore = request.app.state.festival
    if not festival.rename_avatar(avatar_id, body.name):
        return ActionResult(success=False, error=AvatarNotFound.message)
    return ActionResult(success=True)


@router.delete("/avatars/{avatar_id}", response_model=ActionResult)
def delete_avatar(request: Request, avatar_id: int, admin: User = Depends(require_admin)) -> ActionResult:
    festival: FestivalStore = request.app.state.festival
    if festival.delete_avatar(avatar_id) is None:
        return ActionResult(success=False, error=AvatarNotFound.message)
    logger.info("Admin %s deleted avatar %s", admin.id, avatar_id)
    return ActionResult(success=True)
