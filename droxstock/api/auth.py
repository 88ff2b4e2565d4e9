"""Self-registration API router."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from droxstock.db.session import get_db
from droxstock.schemas.schemas import ApiResponse, RegisterRequest, UserOut
from droxstock.services.registration_service import registration_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new account. It stays pending until an admin approves it."""
    user = registration_service.register(db, body.email, body.password, body.full_name)
    return ApiResponse(
        message="Registration received. Your account is pending approval.",
        data=UserOut.model_validate(user),
    )
