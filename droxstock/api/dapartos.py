"""Daparto catalog and CSV import API router."""

import os
import tempfile
from decimal import Decimal
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from droxstock.core.exceptions import InvalidInputError
from droxstock.db.session import get_db
from droxstock.schemas.schemas import (
    ApiResponse, DapartoOut, DapartoCreate, DapartoUpdate, CsvImportOptions,
    CsvJobAccepted, CsvJobStatus,
)
from droxstock.services.csv_import_service import csv_import_service
from droxstock.services.daparto_service import daparto_service
from droxstock.services.job_status_service import job_status_service
from droxstock.core.security import get_current_user_id, require_manager, require_user

router = APIRouter(prefix="/dapartos", tags=["dapartos"])


@router.get("")
async def list_dapartos(
    search: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(15, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    payload: dict = Depends(require_user),
):
    result = daparto_service.list_records(
        db, search, brand, min_price, max_price, page, page_size, sort_by, sort_order
    )
    result["records"] = [DapartoOut.model_validate(r) for r in result["records"]]
    return result


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_daparto(
    body: DapartoCreate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_manager),
):
    record = daparto_service.create(db, body.model_dump())
    return ApiResponse(message="Record created successfully", data=DapartoOut.model_validate(record))


@router.get("/stats", response_model=ApiResponse)
async def daparto_stats(
    db: Session = Depends(get_db),
    payload: dict = Depends(require_user),
):
    return ApiResponse(message="Catalog statistics", data=daparto_service.stats(db))


@router.get("/by-number/{interne_artikelnummer}", response_model=DapartoOut)
async def get_by_number(
    interne_artikelnummer: str,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_user),
):
    return daparto_service.get_by_number(db, interne_artikelnummer)


@router.post("/upload-csv", status_code=status.HTTP_200_OK)
async def upload_csv(
    response: Response,
    csv_file: UploadFile = File(...),
    update_existing: bool = Form(True),
    skip_duplicates: bool = Form(False),
    rollback_on_error: bool = Form(False),
    batch_size: Optional[int] = Form(None),
    email_notification: bool = Form(False),
    user_email: Optional[str] = Form(None),
    mode: str = Form("async"),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    payload: dict = Depends(require_manager),
):
    """Import a semicolon-separated catalog file.

    ``mode=sync`` answers with the full report; ``mode=async`` answers 202
    with a job id to poll at ``/dapartos/csv-jobs/{job_id}``.
    """
    option_values = {
        "update_existing": update_existing,
        "skip_duplicates": skip_duplicates,
        "rollback_on_error": rollback_on_error,
        "email_notification": email_notification,
        "user_email": user_email or None,
        "mode": mode,
    }
    if batch_size is not None:
        option_values["batch_size"] = batch_size
    try:
        options = CsvImportOptions(**option_values)
    except pydantic.ValidationError as e:
        raise InvalidInputError(
            "Invalid import options",
            field="options",
            details={"errors": [f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
                                for err in e.errors()]},
        )

    content = await csv_file.read()
    file_name = csv_file.filename or "upload.csv"
    with tempfile.NamedTemporaryFile(delete=False, suffix=os.path.splitext(file_name)[1]) as tmp:
        tmp.write(content)
        tmp_path = tmp.name

    try:
        result = csv_import_service.submit(
            db, tmp_path, file_name, csv_file.content_type, len(content), options, user_id
        )
    finally:
        os.unlink(tmp_path)

    if options.mode == "sync":
        return result

    response.status_code = status.HTTP_202_ACCEPTED
    return CsvJobAccepted(
        message="CSV file queued for processing",
        job_id=result["job_id"],
        status=result["status"],
        status_url=f"/api/dapartos/csv-jobs/{result['job_id']}",
    )


@router.get("/csv-jobs/{job_id}", response_model=CsvJobStatus)
async def csv_job_status(
    job_id: str,
    payload: dict = Depends(require_user),
):
    return job_status_service.get_status(job_id)


@router.delete("/delete-all", response_model=ApiResponse)
async def delete_all_dapartos(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    payload: dict = Depends(require_manager),
):
    result = daparto_service.soft_delete_all(db)
    return ApiResponse(
        message="All Daparto data deleted successfully",
        data={**result, "deleted_by": user_id},
    )


@router.get("/{record_id}", response_model=DapartoOut)
async def get_daparto(
    record_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_user),
):
    return daparto_service.get(db, record_id)


@router.put("/{record_id}", response_model=ApiResponse)
async def update_daparto(
    record_id: int,
    body: DapartoUpdate,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_manager),
):
    result = daparto_service.update(db, record_id, body.model_dump(exclude_unset=True))
    return ApiResponse(
        message=result["message"],
        data={
            "record": DapartoOut.model_validate(result["record"]),
            "changes": result["changes"],
        },
    )


@router.delete("/{record_id}", response_model=ApiResponse)
async def delete_daparto(
    record_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_manager),
):
    daparto_service.soft_delete(db, record_id)
    return ApiResponse(message="Record deleted successfully")


@router.post("/{record_id}/restore", response_model=ApiResponse)
async def restore_daparto(
    record_id: int,
    db: Session = Depends(get_db),
    payload: dict = Depends(require_manager),
):
    record = daparto_service.restore(db, record_id)
    return ApiResponse(message="Record restored successfully", data=DapartoOut.model_validate(record))
