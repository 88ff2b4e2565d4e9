"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from decimal import Decimal

from droxstock.core.config import settings


# ---- Generic ----
class ApiResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Any] = None


# ---- Permission ----
class PermissionBrief(BaseModel):
    id: int
    name: str
    guard_name: str

    class Config:
        from_attributes = True

class PermissionOut(PermissionBrief):
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=125)
    guard_name: str = Field(settings.DEFAULT_GUARD, max_length=125)
    description: Optional[str] = Field(None, max_length=255)

class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=125)
    description: Optional[str] = Field(None, max_length=255)

class PermissionClone(BaseModel):
    name: str = Field(..., min_length=1, max_length=125)
    description: Optional[str] = Field(None, max_length=255)


# ---- Role ----
class RoleOut(BaseModel):
    id: int
    name: str
    guard_name: str
    description: Optional[str] = None
    permissions: List[PermissionBrief] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=125)
    guard_name: str = Field(settings.DEFAULT_GUARD, max_length=125)
    description: Optional[str] = Field(None, max_length=255)
    permissions: Optional[List[str]] = None

class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=125)
    description: Optional[str] = Field(None, max_length=255)
    permissions: Optional[List[str]] = None

class RoleClone(BaseModel):
    name: str = Field(..., min_length=1, max_length=125)
    description: Optional[str] = Field(None, max_length=255)


# ---- Assignments ----
class RolePermissionRequest(BaseModel):
    role_id: int
    permission_id: int

class RolePermissionsRequest(BaseModel):
    role_id: int
    permission_ids: List[int] = Field(..., min_length=1)

class RoleIdRequest(BaseModel):
    role_id: int

class UserRoleRequest(BaseModel):
    user_id: int
    role_id: int

class UserRolesRequest(BaseModel):
    user_id: int
    role_ids: List[int] = Field(..., min_length=1)

class UserPermissionRequest(BaseModel):
    user_id: int
    permission_id: int

class UserPermissionsRequest(BaseModel):
    user_id: int
    permission_ids: List[int] = Field(..., min_length=1)

class UserIdRequest(BaseModel):
    user_id: int


# ---- User ----
class UserOut(BaseModel):
    id: int
    email: str
    full_name: str
    is_active: bool = True
    registration_status: str
    role_names: List[str] = []
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=255)

class ApproveUserRequest(BaseModel):
    role_name: Optional[str] = None

class RejectUserRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=255)
    role_name: Optional[str] = None

class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8)
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_active: Optional[bool] = None

class UserRolesReplace(BaseModel):
    role_ids: List[int]


# ---- Daparto ----
class DapartoBase(BaseModel):
    tiltle: Optional[str] = Field(None, max_length=255)
    teilemarke_teilenummer: str = Field(..., min_length=1, max_length=255)
    preis: Decimal = Field(..., ge=0, le=Decimal("999999.99"), decimal_places=2)
    zustand: int = Field(..., ge=0, le=5)
    pfand: int = Field(0, ge=0, le=1000)
    versandklasse: int = Field(..., ge=0, le=10)
    lieferzeit: int = Field(..., ge=0, le=365)

class DapartoCreate(DapartoBase):
    interne_artikelnummer: str = Field(..., min_length=1, max_length=100)

class DapartoUpdate(BaseModel):
    interne_artikelnummer: Optional[str] = Field(None, min_length=1, max_length=100)
    tiltle: Optional[str] = Field(None, max_length=255)
    teilemarke_teilenummer: Optional[str] = Field(None, min_length=1, max_length=255)
    preis: Optional[Decimal] = Field(None, ge=0, le=Decimal("999999.99"), decimal_places=2)
    zustand: Optional[int] = Field(None, ge=0, le=5)
    pfand: Optional[int] = Field(None, ge=0, le=1000)
    versandklasse: Optional[int] = Field(None, ge=0, le=10)
    lieferzeit: Optional[int] = Field(None, ge=0, le=365)

class DapartoOut(DapartoCreate):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- CSV import ----
class CsvImportOptions(BaseModel):
    """Options bag for one import run. Serialized as JSON for Celery."""
    update_existing: bool = True
    skip_duplicates: bool = False
    rollback_on_error: bool = False
    batch_size: int = Field(settings.CSV_DEFAULT_BATCH_SIZE, ge=1, le=settings.CSV_MAX_BATCH_SIZE)
    email_notification: bool = False
    user_email: Optional[EmailStr] = None
    mode: Literal["sync", "async"] = "async"
    delimiter: str = Field(settings.CSV_DELIMITER, min_length=1, max_length=1)

    @model_validator(mode="after")
    def _email_target_required(self):
        if self.email_notification and self.mode == "async" and not self.user_email:
            raise ValueError("user_email is required when email_notification is enabled")
        return self

class CsvJobAccepted(BaseModel):
    success: bool = True
    message: str
    job_id: str
    status: str
    status_url: str

class CsvJobStatus(BaseModel):
    job_id: str
    status: str
    file_name: Optional[str] = None
    user_id: Optional[int] = None
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    progress: Optional[Dict[str, int]] = None
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None
