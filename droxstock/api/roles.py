"""Admin role management API router."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from droxstock.db.session import get_db
from droxstock.schemas.schemas import ApiResponse, RoleOut, RoleCreate, RoleUpdate, RoleClone
from droxstock.services.role_service import role_service
from droxstock.core.security import require_admin

router = APIRouter(prefix="/admin/roles", tags=["roles"])


@router.get("")
async def list_roles(
    search: Optional[str] = None,
    guard_name: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = role_service.list_roles(db, search, guard_name, page, page_size)
    result["roles"] = [RoleOut.model_validate(r) for r in result["roles"]]
    return result


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: RoleCreate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    role = role_service.create(db, body.name, body.guard_name, body.description, body.permissions)
    return ApiResponse(message="Role created successfully", data=RoleOut.model_validate(role))


@router.get("/statistics", response_model=ApiResponse)
async def role_statistics(
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    return ApiResponse(message="Role statistics", data=role_service.statistics(db))


@router.get("/{role_id}", response_model=RoleOut)
async def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    return role_service.get(db, role_id)


@router.put("/{role_id}", response_model=ApiResponse)
async def update_role(
    role_id: int,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    role = role_service.update(db, role_id, body.name, body.description, body.permissions)
    return ApiResponse(message="Role updated successfully", data=RoleOut.model_validate(role))


@router.delete("/{role_id}", response_model=ApiResponse)
async def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    role_service.delete(db, role_id)
    return ApiResponse(message="Role deleted successfully")


@router.post("/{role_id}/clone", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def clone_role(
    role_id: int,
    body: RoleClone,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    role = role_service.clone(db, role_id, body.name, body.description)
    return ApiResponse(message="Role cloned successfully", data=RoleOut.model_validate(role))
