"""Admin user management and registration approval API routers."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from droxstock.db.session import get_db
from droxstock.schemas.schemas import (
    ApiResponse, UserOut, UserCreate, UserUpdate, UserRolesReplace,
    ApproveUserRequest, RejectUserRequest,
)
from droxstock.services.registration_service import registration_service
from droxstock.services.user_access_service import user_access_service
from droxstock.core.security import require_admin, get_current_user_id

router = APIRouter(prefix="/admin/users", tags=["users"])
pending_router = APIRouter(prefix="/admin/pending-users", tags=["pending-users"])


@router.get("")
async def list_users(
    search: Optional[str] = None,
    registration_status: Optional[str] = None,
    role: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.list_users(db, search, registration_status, role, page, page_size)
    result["users"] = [UserOut.model_validate(u) for u in result["users"]]
    return result


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    user = registration_service.create_user(
        db, body.email, body.password, body.full_name, body.role_name
    )
    return ApiResponse(message="User created successfully", data=UserOut.model_validate(user))


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    return user_access_service.get_user(db, user_id)


@router.put("/{user_id}", response_model=ApiResponse)
async def update_user(
    user_id: int,
    body: UserUpdate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    user = user_access_service.update_user(db, user_id, body.model_dump(exclude_unset=True))
    return ApiResponse(message="User updated successfully", data=UserOut.model_validate(user))


@router.put("/{user_id}/roles", response_model=ApiResponse)
async def replace_user_roles(
    user_id: int,
    body: UserRolesReplace,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.sync_roles(db, user_id, body.role_ids)
    return ApiResponse(message="User roles updated successfully", data=result)

@router.delete("/{user_id}", response_model=ApiResponse)
async def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_current_user_id),
    payload: dict = Depends(require_admin),
):
    user_access_service.delete_user(db, actor_id, user_id)
    return ApiResponse(message="User deleted successfully")


@pending_router.get("")
async def list_pending_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = registration_service.list_pending(db, page, page_size)
    result["users"] = [UserOut.model_validate(u) for u in result["users"]]
    return result


@pending_router.get("/statistics", response_model=ApiResponse)
async def pending_statistics(
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    return ApiResponse(message="Registration statistics", data=registration_service.statistics(db))


@pending_router.post("/{user_id}/approve", response_model=ApiResponse)
async def approve_user(
    user_id: int,
    body: Optional[ApproveUserRequest] = None,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_current_user_id),
    payload: dict = Depends(require_admin),
):
    user = registration_service.approve(
        db, actor_id, user_id, body.role_name if body else None
    )
    return ApiResponse(message="User approved successfully", data=UserOut.model_validate(user))


@pending_router.post("/{user_id}/reject", response_model=ApiResponse)
async def reject_user(
    user_id: int,
    body: RejectUserRequest,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_current_user_id),
    payload: dict = Depends(require_admin),
):
    user = registration_service.reject(db, actor_id, user_id, body.reason)
    return ApiResponse(message="User registration rejected", data=UserOut.model_validate(user))
