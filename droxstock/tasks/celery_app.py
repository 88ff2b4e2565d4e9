"""Celery app and tasks for async CSV imports."""

from celery import Celery
from droxstock.core.config import settings

celery_app = Celery(
    "droxstock",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_concurrency=settings.CONCURRENCY,
    task_soft_time_limit=settings.CSV_JOB_TIME_LIMIT,
    task_time_limit=settings.CSV_JOB_TIME_LIMIT + 60,
)


@celery_app.task(bind=True, name="process_csv_import")
def process_csv_import(
    self,
    job_id: str,
    object_key: str,
    file_info: dict,
    options: dict,
    user_id: int = None,
) -> dict:
    """Import a CSV file previously stored in MinIO.

    The job status snapshot in Redis is the caller-facing result; the Celery
    result backend keeps a copy of the same report.
    """
    from droxstock.db.session import SessionLocal
    from droxstock.schemas.schemas import CsvImportOptions
    from droxstock.services.csv_import_service import csv_import_service

    db = SessionLocal()
    try:
        return csv_import_service.process_job(
            db, job_id, object_key, file_info, CsvImportOptions(**options), user_id
        )
    finally:
        db.close()
