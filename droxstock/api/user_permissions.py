"""User ↔ direct permission assignment API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from droxstock.db.session import get_db
from droxstock.schemas.schemas import (
    ApiResponse, UserPermissionRequest, UserPermissionsRequest, UserIdRequest,
)
from droxstock.services.user_access_service import user_access_service
from droxstock.core.security import require_admin

router = APIRouter(prefix="/admin/user-permissions", tags=["user-permissions"])


@router.post("/assign", response_model=ApiResponse)
async def assign_permission(
    body: UserPermissionRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.assign_permission(db, body.user_id, body.permission_id)
    return ApiResponse(message=result.get("note", "Permission granted to user"), data=result)


@router.post("/assign-multiple", response_model=ApiResponse)
async def assign_permissions(
    body: UserPermissionsRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.assign_permissions(db, body.user_id, body.permission_ids)
    return ApiResponse(
        message=f"{len(result['assigned_permissions'])} permission(s) granted", data=result
    )


@router.post("/remove", response_model=ApiResponse)
async def remove_permission(
    body: UserPermissionRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.remove_permission(db, body.user_id, body.permission_id)
    return ApiResponse(message="Permission revoked from user", data=result)


@router.post("/remove-all", response_model=ApiResponse)
async def remove_all_permissions(
    body: UserIdRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.remove_all_permissions(db, body.user_id)
    return ApiResponse(
        message=f"{len(result['removed_permissions'])} permission(s) revoked", data=result
    )
