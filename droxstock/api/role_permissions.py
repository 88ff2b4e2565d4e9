"""Role ↔ permission assignment API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from droxstock.db.session import get_db
from droxstock.schemas.schemas import (
    ApiResponse, RolePermissionRequest, RolePermissionsRequest, RoleIdRequest,
)
from droxstock.services.role_service import role_service
from droxstock.core.security import require_admin

router = APIRouter(prefix="/admin/role-permissions", tags=["role-permissions"])


@router.post("/assign", response_model=ApiResponse)
async def assign_permission(
    body: RolePermissionRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = role_service.assign_permission(db, body.role_id, body.permission_id)
    return ApiResponse(message=result.get("note", "Permission assigned to role"), data=result)


@router.post("/assign-multiple", response_model=ApiResponse)
async def assign_permissions(
    body: RolePermissionsRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = role_service.assign_permissions(db, body.role_id, body.permission_ids)
    return ApiResponse(message=f"{len(result['assigned'])} permission(s) assigned", data=result)


@router.post("/remove", response_model=ApiResponse)
async def remove_permission(
    body: RolePermissionRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = role_service.remove_permission(db, body.role_id, body.permission_id)
    return ApiResponse(message="Permission removed from role", data=result)


@router.post("/remove-all", response_model=ApiResponse)
async def remove_all_permissions(
    body: RoleIdRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = role_service.remove_all_permissions(db, body.role_id)
    return ApiResponse(message=f"{len(result['removed'])} permission(s) removed", data=result)
