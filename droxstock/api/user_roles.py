"""User ↔ role assignment API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from droxstock.db.session import get_db
from droxstock.schemas.schemas import ApiResponse, UserRoleRequest, UserRolesRequest, UserIdRequest
from droxstock.services.user_access_service import user_access_service
from droxstock.core.security import require_admin

router = APIRouter(prefix="/admin/user-roles", tags=["user-roles"])


@router.post("/assign", response_model=ApiResponse)
async def assign_role(
    body: UserRoleRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.assign_role(db, body.user_id, body.role_id)
    return ApiResponse(message=result.get("note", "Role assigned to user"), data=result)


@router.post("/assign-multiple", response_model=ApiResponse)
async def assign_roles(
    body: UserRolesRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.assign_roles(db, body.user_id, body.role_ids)
    return ApiResponse(message=f"{len(result['assigned_roles'])} role(s) assigned", data=result)


@router.post("/remove", response_model=ApiResponse)
async def remove_role(
    body: UserRoleRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.remove_role(db, body.user_id, body.role_id)
    return ApiResponse(message="Role removed from user", data=result)


@router.post("/remove-all", response_model=ApiResponse)
async def remove_all_roles(
    body: UserIdRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    result = user_access_service.remove_all_roles(db, body.user_id)
    return ApiResponse(message=f"{len(result['removed_roles'])} role(s) removed", data=result)


@router.get("/users/{user_id}/permissions", response_model=ApiResponse)
async def user_permissions(
    user_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_admin),
):
    return ApiResponse(
        message="User permissions", data=user_access_service.get_user_permissions(db, user_id)
    )
