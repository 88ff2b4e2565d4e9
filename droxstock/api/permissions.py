"""Admin permission management API router."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from droxstock.db.session import get_db
from droxstock.schemas.schemas import (
    ApiResponse, PermissionOut, PermissionCreate, PermissionUpdate, PermissionClone,
)
from droxstock.services.permission_service import permission_service
from droxstock.core.security import require_admin

router = APIRouter(prefix="/admin/permissions", tags=["permissions"])


@router.get("")
async def list_permissions(
    search: Optional[str] = None,
    guard_name: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = permission_service.list_permissions(db, search, guard_name, page, page_size)
    result["permissions"] = [PermissionOut.model_validate(p) for p in result["permissions"]]
    return result


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    body: PermissionCreate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    permission = permission_service.create(db, body.name, body.guard_name, body.description)
    return ApiResponse(
        message="Permission created successfully", data=PermissionOut.model_validate(permission)
    )


@router.get("/statistics", response_model=ApiResponse)
async def permission_statistics(
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    return ApiResponse(message="Permission statistics", data=permission_service.statistics(db))


@router.get("/{permission_id}", response_model=PermissionOut)
async def get_permission(
    permission_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    return permission_service.get(db, permission_id)


@router.put("/{permission_id}", response_model=ApiResponse)
async def update_permission(
    permission_id: int,
    body: PermissionUpdate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    permission = permission_service.update(db, permission_id, body.name, body.description)
    return ApiResponse(
        message="Permission updated successfully", data=PermissionOut.model_validate(permission)
    )


@router.delete("/{permission_id}", response_model=ApiResponse)
async def delete_permission(
    permission_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    permission_service.delete(db, permission_id)
    return ApiResponse(message="Permission deleted successfully")


@router.post("/{permission_id}/clone", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def clone_permission(
    permission_id: int,
    body: PermissionClone,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    permission = permission_service.clone(db, permission_id, body.name, body.description)
    return ApiResponse(
        message="Permission cloned successfully", data=PermissionOut.model_validate(permission)
    )
